"""
Consecutive-failure tracking per check.

The streak is persisted through the storage so that thresholds spanning
several scheduled invocations survive process restarts. Each check is updated
by exactly one task per invocation, so a single atomic update is enough.
"""

import logging

from check_engine.contracts import CheckStorage
from check_engine.domain import CheckDefinition

# Module logger
logger = logging.getLogger(__name__)


class FailureCounter:
    def __init__(self, storage: CheckStorage) -> None:
        self._storage: CheckStorage = storage

    async def update(self, check_id: str, is_failure: bool) -> int:
        """
        Updates the persisted failure streak of a check.

        Args:
            check_id: The check to update.
            is_failure: Whether the final result of this cycle is a failure.

        Returns:
            int: The streak after the update; 0 after any non-failure.
        """
        if not is_failure:
            await self._storage.reset_failure_count(check_id)
            return 0
        return await self._storage.increment_failure_count(check_id)

    @staticmethod
    def threshold_reached(definition: CheckDefinition, is_failure: bool, count: int) -> bool:
        """
        Tells whether the fallback alert gate of a check is open.
        """
        threshold = definition.failure_threshold or 1
        if is_failure and count < threshold:
            logger.info(f"Check {definition.id} failed ({count}/{threshold}), not alerting yet")
        return is_failure and count >= threshold
