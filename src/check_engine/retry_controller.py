"""
Retry and confirmation protocol around a single check.

The RetryController turns a sequence of probe attempts into the one result the
rest of the engine sees for a check cycle. A failing first attempt is retried
up to max_retries times; if every retry fails, a final confirmation attempt is
made after a longer delay. A successful confirmation is reported as a clean
success, a failed one as a confirmed failure.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from .contracts import CheckExecutor
from .domain import CheckDefinition, CheckResult, RetryConfig, value_of

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_RETRY_CONFIG = RetryConfig(max_retries=3, retry_delay_ms=2000, confirmation_delay_ms=5000)

SleepFunction = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RetryController:
    """
    Drives a CheckExecutor through the retry/confirmation protocol.

    The attempts of one cycle are strictly sequential: each retry waits for its
    own delay before probing again. Delays scale with the per-check
    configuration, falling back to the controller defaults.
    """

    def __init__(
        self,
        executor: CheckExecutor,
        defaults: RetryConfig = DEFAULT_RETRY_CONFIG,
        sleep: SleepFunction = asyncio.sleep,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initializes a new RetryController.

        Args:
            executor: Runs a single attempt of a check.
            defaults: Retry configuration used where a check leaves a value unset.
            sleep: Coroutine function used to wait between attempts, in seconds.
            clock: Returns the current instant for attempts after the first.
        """
        self._executor: CheckExecutor = executor
        self._defaults: RetryConfig = defaults.resolve(DEFAULT_RETRY_CONFIG)
        self._sleep: SleepFunction = sleep
        self._clock: Clock = clock

    def resolve_config(self, definition: CheckDefinition) -> RetryConfig:
        return definition.retry_config.resolve(self._defaults)

    async def run_cycle(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        """
        Runs a full check cycle and returns its final result.

        Steps:
        1. Run one attempt; a success is returned immediately.
        2. With retries disabled, the failing result is returned immediately.
        3. Retry up to max_retries times, waiting retry_delay_ms before each;
           the first success is returned.
        4. Wait confirmation_delay_ms and run a confirmation attempt.
        5. A successful confirmation is returned with its error cleared.
        6. A failed confirmation is returned as a confirmed failure.

        Args:
            definition: The check to run.
            now: The instant the first attempt is evaluated at.

        Returns:
            CheckResult: The final result of the cycle.
        """
        config = self.resolve_config(definition)
        logger.debug(
            f"Executing {value_of(definition.check_type)} check {definition.id} "
            f"(retries={config.max_retries}, retry_delay={config.retry_delay_ms}ms, "
            f"confirmation_delay={config.confirmation_delay_ms}ms)"
        )

        result = await self._executor.execute(definition, now)
        if result.is_success:
            return result

        if config.max_retries == 0:
            logger.info(f"Retries disabled for check {definition.id}, returning failure immediately")
            return result

        logger.info(f"Initial attempt failed for check {definition.id}, attempting retries...")
        for attempt in range(1, config.max_retries + 1):
            await self._sleep(config.retry_delay_ms / 1000)
            logger.debug(f"Retry attempt {attempt}/{config.max_retries} for check {definition.id}")
            result = await self._executor.execute(definition, self._clock())
            if result.is_success:
                logger.info(f"Check {definition.id} succeeded on retry attempt {attempt}")
                return result

        logger.info(f"All retries failed for check {definition.id}, performing confirmation attempt")
        await self._sleep(config.confirmation_delay_ms / 1000)
        confirmation = await self._executor.execute(definition, self._clock())

        if confirmation.is_success:
            logger.info(f"Confirmation succeeded for check {definition.id}, treating as transient")
            return confirmation._replace(error_message=None)

        logger.warning(f"Confirmed failure for check {definition.id}")
        detail = confirmation.error_message or result.error_message or "Unknown error"
        return confirmation._replace(
            error_message=f"Confirmed failure after {config.max_retries} retries: {detail}"
        )
