"""
Tests for the retrying license API transport.
"""

import asyncio
import json
from unittest.mock import AsyncMock, call, patch

import httpx
import pytest

from entitlement_client.errors import (
    ConnectivityFailure,
    ProtocolFailure,
    TransportFailure,
    UnexpectedFailure,
)
from entitlement_client.fingerprint import build_license_config
from entitlement_client.transport import LicenseApiClient, calculate_backoff

VALID_BODY = {
    "valid": True,
    "expiryDaysLeft": 30,
    "activeGracePeriod": False,
    "isTrial": False,
}


def make_client(handler, **kwargs) -> LicenseApiClient:
    kwargs.setdefault("base_url", "https://license.test")
    return LicenseApiClient(transport=httpx.MockTransport(handler), **kwargs)


@pytest.fixture
def config():
    return build_license_config("test-app", "test-license-key", "test-org-id")


class TestCalculateBackoff:
    def test_doubles_per_attempt(self) -> None:
        assert [calculate_backoff(a, 5000) for a in range(3)] == [5000, 10000, 20000]

    def test_capped_at_thirty_seconds(self) -> None:
        assert calculate_backoff(3, 5000) == 30000
        assert calculate_backoff(10, 5000) == 30000


class TestValidateLicenseRequest:
    @pytest.mark.asyncio
    async def test_posts_license_key_and_fingerprint(self, config) -> None:
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["api_key"] = request.headers.get("x-api-key")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=VALID_BODY)

        client = make_client(handler)
        result = await client.validate_license(config)

        assert result.valid is True
        assert result.expiryDaysLeft == 30
        assert captured["method"] == "POST"
        assert captured["url"] == "https://license.test/licenses/validate"
        assert captured["api_key"] == "test-org-id"
        assert captured["body"] == {
            "licenseKey": "test-license-key",
            "fingerprint": config.fingerprint,
        }

    @pytest.mark.asyncio
    async def test_trailing_slash_in_base_url(self, config) -> None:
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json=VALID_BODY)

        client = make_client(handler, base_url="https://license.test/")
        await client.validate_license(config)

        assert urls == ["https://license.test/licenses/validate"]


class TestRetries:
    @pytest.mark.asyncio
    async def test_retries_server_errors_with_backoff_then_raises(self, config) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        client = make_client(handler, retry_count=3, retry_delay_ms=5000)

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(TransportFailure) as exc_info:
                await client.validate_license(config)

        assert exc_info.value.status_code == 503
        assert len(calls) == 4
        assert sleep.await_args_list == [call(5.0), call(10.0), call(20.0)]

    @pytest.mark.asyncio
    async def test_success_after_transient_failure(self, config) -> None:
        responses = [httpx.Response(502), httpx.Response(200, json=VALID_BODY)]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        client = make_client(handler)

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await client.validate_license(config)

        assert result.valid is True
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, config) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401)

        client = make_client(handler)

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(TransportFailure) as exc_info:
                await client.validate_license(config)

        assert exc_info.value.status_code == 401
        assert "HTTP 401: Unauthorized" in str(exc_info.value)
        assert len(calls) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, config) -> None:
        responses = [httpx.Response(429), httpx.Response(200, json=VALID_BODY)]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        client = make_client(handler)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await client.validate_license(config)

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_zero_retry_count_makes_single_attempt(self, config) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        client = make_client(handler, retry_count=0)

        with pytest.raises(TransportFailure):
            await client.validate_license(config)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_retried(self, config) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise RuntimeError("bug in handler")

        client = make_client(handler)

        with pytest.raises(RuntimeError):
            await client.validate_license(config)

        assert len(calls) == 1


class TestConnectivity:
    @pytest.mark.asyncio
    async def test_connect_error_becomes_connectivity_failure(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        client = make_client(handler, retry_count=2)

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ConnectivityFailure) as exc_info:
                await client.validate_license(config)

        assert exc_info.value.code == "ECONNREFUSED"
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_becomes_connectivity_failure(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler, retry_count=0, timeout_ms=250)

        with pytest.raises(ConnectivityFailure) as exc_info:
            await client.validate_license(config)

        assert exc_info.value.code == "ETIMEDOUT"
        assert "250ms" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_slow_response_is_bounded_by_timeout(self, config) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=VALID_BODY)

        client = make_client(handler, retry_count=0, timeout_ms=50)

        with pytest.raises(ConnectivityFailure) as exc_info:
            await client.validate_license(config)

        assert exc_info.value.code == "ETIMEDOUT"


class TestResponseParsing:
    @pytest.mark.parametrize(
        "body",
        [
            {"expiryDaysLeft": 3, "activeGracePeriod": False, "isTrial": False},
            {"valid": "true", "activeGracePeriod": False, "isTrial": False},
            {"valid": True, "expiryDaysLeft": "30", "activeGracePeriod": False, "isTrial": False},
            {"valid": True, "expiryDaysLeft": True, "activeGracePeriod": False, "isTrial": False},
            {"valid": True, "expiryDaysLeft": float("inf")},
            {"valid": True, "expiryDaysLeft": float("-inf")},
            {"valid": True, "expiryDaysLeft": float("nan")},
            {"valid": True, "activeGracePeriod": 1, "isTrial": False},
            {"valid": True, "activeGracePeriod": False, "isTrial": "no"},
            ["valid", True],
            None,
        ],
    )
    def test_schema_mismatch_is_protocol_failure(self, body) -> None:
        with pytest.raises(ProtocolFailure) as exc_info:
            LicenseApiClient.parse_validation_response(body)

        assert exc_info.value.status_code == 500

    def test_optional_fields_default(self) -> None:
        result = LicenseApiClient.parse_validation_response({"valid": False})

        assert result.valid is False
        assert result.expiryDaysLeft is None
        assert result.activeGracePeriod is False
        assert result.isTrial is False

    def test_extra_fields_are_ignored(self) -> None:
        body = dict(VALID_BODY, plan="enterprise")

        assert LicenseApiClient.parse_validation_response(body).valid is True

    @pytest.mark.asyncio
    async def test_non_json_body_is_retried_as_server_failure(self, config) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, content=b"<html>oops</html>")

        client = make_client(handler, retry_count=1)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ProtocolFailure):
                await client.validate_license(config)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_finite_expiry_days_is_protocol_failure(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b'{"valid": true, "expiryDaysLeft": 1e400}')

        client = make_client(handler, retry_count=0)

        with pytest.raises(ProtocolFailure):
            await client.validate_license(config)


class TestRedirects:
    @pytest.mark.asyncio
    async def test_redirect_is_followed(self, config) -> None:
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            if request.url.path == "/licenses/validate":
                return httpx.Response(307, headers={"Location": "https://license.test/v2/licenses/validate"})
            assert json.loads(request.content)["licenseKey"] == "test-license-key"
            return httpx.Response(200, json=VALID_BODY)

        client = make_client(handler)
        result = await client.validate_license(config)

        assert result.valid is True
        assert urls == [
            "https://license.test/licenses/validate",
            "https://license.test/v2/licenses/validate",
        ]

    @pytest.mark.asyncio
    async def test_redirect_without_location_is_unexpected(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(300)

        client = make_client(handler)

        with pytest.raises(UnexpectedFailure):
            await client.validate_license(config)

    @pytest.mark.asyncio
    async def test_redirect_loop_is_unexpected(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(307, headers={"Location": "https://license.test/licenses/validate"})

        client = make_client(handler)

        with pytest.raises(UnexpectedFailure):
            await client.validate_license(config)
