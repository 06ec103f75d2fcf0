"""
Unit tests for the aiohttp-based probes.

The aiohttp.ClientSession is mocked so that each test controls the response
(or the error) of the single request a probe makes.

The tests follow the Arrange-Act-Assert (AAA) pattern and use proper mocking
of all external dependencies to ensure true unit testing.
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from check_engine.domain import (
    CheckDefinition,
    CheckStatus,
    CheckType,
    HttpAuthType,
    KeywordMatchMode,
)
from check_engine.executor.aiohttp_probes import (
    USER_AGENT,
    HttpProbe,
    KeywordProbe,
    SslProbe,
    build_request_headers,
    evaluate_keyword,
    evaluate_status_code,
)


@pytest_asyncio.fixture
async def mock_session() -> AsyncMock:
    """
    Creates a mock aiohttp.ClientSession for testing.

    Returns:
        A mock ClientSession whose request() yields a 200 response by default.
    """
    session = AsyncMock(spec=aiohttp.ClientSession)

    response = AsyncMock()
    session.request.return_value.__aenter__.return_value = response
    response.status = 200
    response.text.return_value = "Service is healthy"

    return session


@pytest.fixture
def keyword_definition(http_definition: CheckDefinition) -> CheckDefinition:
    return http_definition._replace(
        id="check-keyword", check_type=CheckType.KEYWORD, keyword_value="healthy"
    )


@pytest.mark.asyncio
async def test_http_probe_should_succeed_on_expected_status(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    probe = HttpProbe(mock_session)

    # Act
    result = await probe.execute(http_definition, now)

    # Assert
    assert result.status == CheckStatus.SUCCESS
    assert result.status_code == 200
    assert result.error_message is None
    assert result.response_time_ms is not None
    call_args = mock_session.request.call_args[0]
    call_kwargs = mock_session.request.call_args[1]
    assert call_args == ("GET", "https://example.com/health")
    assert call_kwargs["timeout"].total == 10
    assert call_kwargs["headers"]["User-Agent"] == USER_AGENT


@pytest.mark.asyncio
async def test_http_probe_should_fail_on_unexpected_status(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    mock_session.request.return_value.__aenter__.return_value.status = 503
    probe = HttpProbe(mock_session)

    # Act
    result = await probe.execute(http_definition, now)

    # Assert
    assert result.status == CheckStatus.FAILURE
    assert result.status_code == 503
    assert result.error_message == "Expected status 200, got 503"


@pytest.mark.asyncio
async def test_http_probe_should_use_configured_method_and_expected_status(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    mock_session.request.return_value.__aenter__.return_value.status = 204
    definition = http_definition._replace(http_method="post", expected_status_code=204)
    probe = HttpProbe(mock_session)

    # Act
    result = await probe.execute(definition, now)

    # Assert
    assert result.status == CheckStatus.SUCCESS
    assert mock_session.request.call_args[0][0] == "POST"


@pytest.mark.asyncio
async def test_http_probe_should_describe_timeouts(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    mock_session.request.side_effect = asyncio.TimeoutError()
    probe = HttpProbe(mock_session)

    # Act
    result = await probe.execute(http_definition, now)

    # Assert
    assert result.status == CheckStatus.FAILURE
    assert result.error_message == "Request timed out after 10s"


@pytest.mark.asyncio
async def test_http_probe_should_report_connection_errors(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    mock_session.request.side_effect = aiohttp.ClientConnectionError("Connection refused")
    probe = HttpProbe(mock_session)

    # Act
    result = await probe.execute(http_definition, now)

    # Assert
    assert result.status == CheckStatus.FAILURE
    assert result.error_message == "Connection refused"


@pytest.mark.asyncio
async def test_http_probe_should_fail_without_url(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    probe = HttpProbe(mock_session)

    # Act
    result = await probe.execute(http_definition._replace(url=None), now)

    # Assert
    assert result.error_message == "No URL configured for http check"
    mock_session.request.assert_not_called()


@pytest.mark.asyncio
async def test_keyword_probe_should_find_keyword(
    mock_session: AsyncMock, keyword_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    probe = KeywordProbe(mock_session)

    # Act
    result = await probe.execute(keyword_definition, now)

    # Assert
    assert result.status == CheckStatus.SUCCESS
    assert result.status_code == 200


@pytest.mark.asyncio
async def test_keyword_probe_should_fail_when_forbidden_keyword_present(
    mock_session: AsyncMock, keyword_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    definition = keyword_definition._replace(keyword_match_mode=KeywordMatchMode.NOT_CONTAINS)
    probe = KeywordProbe(mock_session)

    # Act
    result = await probe.execute(definition, now)

    # Assert
    assert result.status == CheckStatus.FAILURE
    assert result.error_message == 'Keyword "healthy" was found in response (should not contain)'


@pytest.mark.asyncio
async def test_keyword_probe_should_match_body_with_invalid_utf8_bytes(
    keyword_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    async def status_page(request: web.Request) -> web.Response:
        return web.Response(
            body=b"status: healthy \xff\xfe tail", content_type="text/plain", charset="utf-8"
        )

    app = web.Application()
    app.router.add_get("/status", status_page)
    server = test_utils.TestServer(app)
    await server.start_server()

    # Act
    try:
        async with aiohttp.ClientSession() as session:
            result = await KeywordProbe(session).execute(
                keyword_definition._replace(url=str(server.make_url("/status"))), now
            )
    finally:
        await server.close()

    # Assert
    assert result.status == CheckStatus.SUCCESS
    assert result.status_code == 200
    assert result.error_message is None


@pytest.mark.asyncio
async def test_ssl_probe_should_send_head_and_leave_certificate_fields_empty(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    probe = SslProbe(mock_session)
    definition = http_definition._replace(check_type=CheckType.SSL)

    # Act
    result = await probe.execute(definition, now)

    # Assert
    assert result.status == CheckStatus.SUCCESS
    assert mock_session.request.call_args[0] == ("HEAD", "https://example.com/health")
    assert result.ssl_expiry_date is None
    assert result.ssl_days_remaining is None


@pytest.mark.asyncio
async def test_ssl_probe_should_prefix_certificate_errors(
    mock_session: AsyncMock, http_definition: CheckDefinition, now: datetime
) -> None:
    # Arrange
    mock_session.request.side_effect = ValueError("certificate verify failed")
    probe = SslProbe(mock_session)

    # Act
    result = await probe.execute(http_definition._replace(check_type=CheckType.SSL), now)

    # Assert
    assert result.status == CheckStatus.FAILURE
    assert result.error_message == "SSL Error: certificate verify failed"


def test_build_request_headers_should_apply_auth_last(http_definition: CheckDefinition) -> None:
    # Arrange
    definition = http_definition._replace(
        custom_headers={"User-Agent": "custom", "Authorization": "ignored", "X-Trace": "1"},
        http_auth_type=HttpAuthType.BEARER,
        http_auth_credentials={"token": "secret"},
    )

    # Act
    headers = build_request_headers(definition)

    # Assert
    assert headers == {"User-Agent": "custom", "Authorization": "Bearer secret", "X-Trace": "1"}


def test_build_request_headers_should_encode_basic_auth(http_definition: CheckDefinition) -> None:
    # Arrange
    definition = http_definition._replace(
        http_auth_type=HttpAuthType.BASIC,
        http_auth_credentials={"username": "user", "password": "pass"},
    )

    # Act
    headers = build_request_headers(definition)

    # Assert
    assert headers["Authorization"] == "Basic dXNlcjpwYXNz"


def test_build_request_headers_should_ignore_incomplete_credentials(
    http_definition: CheckDefinition,
) -> None:
    # Arrange
    definition = http_definition._replace(
        http_auth_type=HttpAuthType.BASIC, http_auth_credentials={"username": "user"}
    )

    # Act
    headers = build_request_headers(definition)

    # Assert
    assert "Authorization" not in headers


def test_evaluate_status_code_should_default_to_200() -> None:
    assert evaluate_status_code(None, 200) == (CheckStatus.SUCCESS, None)
    assert evaluate_status_code(None, 301) == (CheckStatus.FAILURE, "Expected status 200, got 301")


def test_evaluate_keyword_should_report_missing_keyword() -> None:
    assert evaluate_keyword("all good", "healthy", None) == (
        CheckStatus.FAILURE,
        'Keyword "healthy" not found in response',
    )
    assert evaluate_keyword("all good", "healthy", "not_contains") == (CheckStatus.SUCCESS, None)
