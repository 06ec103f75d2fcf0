"""
HTTP-based probes implemented with the aiohttp library.

This module provides the http, keyword and ssl probes. Each probe performs a
single request through a shared aiohttp ClientSession, measures the response
time, and converts every error into a failure result. The decision of whether
an observed response is a success lives in small pure functions so it can be
tested without any network.
"""

import logging
import time
from datetime import datetime
from typing import Dict, Optional, Tuple

import aiohttp

from check_engine.contracts import CheckExecutor
from check_engine.domain import (
    CheckDefinition,
    CheckResult,
    CheckStatus,
    HttpAuthType,
    KeywordMatchMode,
)
from check_engine.executor.outcome import describe_error, elapsed_ms, failure_result

# Module logger
logger = logging.getLogger(__name__)

USER_AGENT = "MonitoringBot/1.0"
DEFAULT_EXPECTED_STATUS = 200
DEFAULT_METHOD = "GET"

Outcome = Tuple[CheckStatus, Optional[str]]


def build_request_headers(definition: CheckDefinition) -> Dict[str, str]:
    """
    Builds the request headers of an HTTP or keyword check.

    The user agent comes first, custom headers may override it, and the
    Authorization header derived from the auth configuration is applied last.
    Incomplete credentials are ignored.

    Args:
        definition: The check being executed.

    Returns:
        Dict[str, str]: The headers to send.
    """
    headers: Dict[str, str] = {"User-Agent": USER_AGENT}

    if definition.custom_headers:
        headers.update(definition.custom_headers)

    credentials = definition.http_auth_credentials or {}
    if definition.http_auth_type == HttpAuthType.BASIC:
        username = credentials.get("username")
        password = credentials.get("password")
        if username and password:
            headers["Authorization"] = aiohttp.BasicAuth(username, password).encode()
    elif definition.http_auth_type == HttpAuthType.BEARER:
        token = credentials.get("token")
        if token:
            headers["Authorization"] = f"Bearer {token}"

    return headers


def evaluate_status_code(expected: Optional[int], actual: int) -> Outcome:
    expected_status = expected or DEFAULT_EXPECTED_STATUS
    if actual == expected_status:
        return CheckStatus.SUCCESS, None
    return CheckStatus.FAILURE, f"Expected status {expected_status}, got {actual}"


def evaluate_keyword(body: str, keyword: Optional[str], mode: Optional[str]) -> Outcome:
    """
    Decides the outcome of a keyword check from the response body.

    Args:
        body: The response body as text.
        keyword: The keyword to look for; None is treated as the empty string.
        mode: contains (the default) or not_contains.

    Returns:
        Outcome: The status and, for a failure, the diagnostic message.
    """
    keyword = keyword or ""
    match_mode = mode or KeywordMatchMode.CONTAINS
    found = keyword in body

    if match_mode == KeywordMatchMode.NOT_CONTAINS:
        if not found:
            return CheckStatus.SUCCESS, None
        return CheckStatus.FAILURE, f'Keyword "{keyword}" was found in response (should not contain)'

    if found:
        return CheckStatus.SUCCESS, None
    return CheckStatus.FAILURE, f'Keyword "{keyword}" not found in response'


def is_ssl_error(error: BaseException) -> bool:
    if isinstance(error, aiohttp.ClientSSLError):
        return True
    message = str(error)
    return "certificate" in message or "SSL" in message or "TLS" in message


class _AiohttpProbe(CheckExecutor):
    """
    Common plumbing of the aiohttp probes: a shared session and a timeout.
    """

    def __init__(self, session: aiohttp.ClientSession) -> None:
        """
        Initializes the probe with a shared aiohttp ClientSession.

        Args:
            session: An active aiohttp.ClientSession to be used for requests.
        """
        self._session: aiohttp.ClientSession = session

    @staticmethod
    def _timeout(definition: CheckDefinition) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=definition.timeout_seconds)


class HttpProbe(_AiohttpProbe):
    """Checks that a URL answers with the expected status code."""

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if not definition.url:
            return failure_result(definition, "No URL configured for http check")

        logger.debug(f"Starting http probe for check {definition.id}: {definition.url}")
        start_time = time.monotonic()
        try:
            async with self._session.request(
                (definition.http_method or DEFAULT_METHOD).upper(),
                definition.url,
                headers=build_request_headers(definition),
                timeout=self._timeout(definition),
            ) as response:
                status_code = response.status
        except Exception as e:
            logger.debug(f"http probe for check {definition.id} failed: {e!r}")
            return failure_result(
                definition,
                describe_error(e, definition.timeout_seconds),
                response_time_ms=elapsed_ms(start_time, time.monotonic()),
            )

        status, message = evaluate_status_code(definition.expected_status_code, status_code)
        return CheckResult(
            check_id=definition.id,
            status=status,
            response_time_ms=elapsed_ms(start_time, time.monotonic()),
            status_code=status_code,
            error_message=message,
        )


class KeywordProbe(_AiohttpProbe):
    """Checks for the presence or absence of a keyword in a response body."""

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if not definition.url:
            return failure_result(definition, "No URL configured for keyword check")

        start_time = time.monotonic()
        try:
            async with self._session.request(
                (definition.http_method or DEFAULT_METHOD).upper(),
                definition.url,
                headers=build_request_headers(definition),
                timeout=self._timeout(definition),
            ) as response:
                status_code = response.status
                response_time_ms = elapsed_ms(start_time, time.monotonic())
                body = await response.text(errors="replace")
        except Exception as e:
            logger.debug(f"keyword probe for check {definition.id} failed: {e!r}")
            return failure_result(
                definition,
                describe_error(e, definition.timeout_seconds),
                response_time_ms=elapsed_ms(start_time, time.monotonic()),
            )

        status, message = evaluate_keyword(
            body, definition.keyword_value, definition.keyword_match_mode
        )
        return CheckResult(
            check_id=definition.id,
            status=status,
            response_time_ms=response_time_ms,
            status_code=status_code,
            error_message=message,
        )


class SslProbe(_AiohttpProbe):
    """
    Checks that an HTTPS endpoint completes a TLS handshake and a HEAD request.

    Certificate details are not collected; the ssl_* fields of the result stay
    empty.
    """

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if not definition.url:
            return failure_result(definition, "No URL configured for ssl check")

        start_time = time.monotonic()
        try:
            async with self._session.request(
                "HEAD", definition.url, timeout=self._timeout(definition)
            ) as response:
                status_code = response.status
        except Exception as e:
            message = describe_error(e, definition.timeout_seconds)
            if is_ssl_error(e):
                message = f"SSL Error: {message}"
            return failure_result(
                definition, message, response_time_ms=elapsed_ms(start_time, time.monotonic())
            )

        return CheckResult(
            check_id=definition.id,
            status=CheckStatus.SUCCESS,
            response_time_ms=elapsed_ms(start_time, time.monotonic()),
            status_code=status_code,
        )
