import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from entitlement_client.config import (
    DEFAULT_BASE_URL,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    MAX_BACKOFF_MS,
)
from entitlement_client.errors import (
    ConnectivityFailure,
    ErrorClassifier,
    ProtocolFailure,
    TransportFailure,
    UnexpectedFailure,
    format_error_message,
)
from entitlement_client.models import (
    LicenseConfig,
    LicenseValidationRequest,
    ValidationResponse,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def calculate_backoff(attempt: int, base_delay_ms: int) -> int:
    """Delay in milliseconds before retrying after the given zero-based attempt."""
    return min(base_delay_ms * (2 ** attempt), MAX_BACKOFF_MS)


class LicenseApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        classifier: Optional[ErrorClassifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_count = retry_count
        self.retry_delay_ms = retry_delay_ms
        self.timeout_ms = timeout_ms
        self.classifier = classifier or ErrorClassifier()
        self.transport = transport
        self.logger = log or logger

    async def validate_license(self, config: LicenseConfig) -> ValidationResult:
        """
        Validate license with the license authority.

        Transient failures are retried with exponential backoff; the last
        failure is raised once the attempt budget is spent or as soon as a
        failure is not retryable.
        """
        url = f"{self.base_url}/licenses/validate"
        payload = LicenseValidationRequest(
            licenseKey=config.licenseKey,
            fingerprint=config.fingerprint,
        )
        headers = {
            "Content-Type": "application/json",
            "x-api-key": config.organizationId,
        }

        attempt = 0
        while True:
            try:
                self.logger.debug(f"Validating license for application: {config.applicationName}")
                data = await self._post(url, payload.model_dump(), headers)
                self.logger.debug(f"License validation response received for: {config.applicationName}")
                return self.parse_validation_response(data)
            except Exception as e:
                if attempt >= self.retry_count or not self.classifier.is_retryable(e):
                    raise

                delay_ms = calculate_backoff(attempt, self.retry_delay_ms)
                self.logger.warning(
                    f"Attempt {attempt + 1} failed, retrying in {delay_ms}ms: {format_error_message(e)}"
                )
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        timeout = self.timeout_ms / 1000
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                # httpx limits each phase separately; bound the whole attempt too
                response = await asyncio.wait_for(
                    client.post(url, json=payload, headers=headers),
                    timeout,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise ConnectivityFailure(
                f"Request timeout after {self.timeout_ms}ms: {format_error_message(e)}",
                code="ETIMEDOUT",
            ) from e
        except httpx.ConnectError as e:
            raise ConnectivityFailure(
                f"Connection error: {format_error_message(e)}",
                code="ECONNREFUSED",
            ) from e
        except httpx.TransportError as e:
            raise ConnectivityFailure(f"Network error: {format_error_message(e)}") from e
        except httpx.TooManyRedirects as e:
            raise UnexpectedFailure(f"Redirect loop: {format_error_message(e)}") from e

        if response.status_code < 400 and not response.is_success:
            # Informational answers and redirects without a usable Location
            raise UnexpectedFailure(f"HTTP {response.status_code}: {response.reason_phrase}")

        if not response.is_success:
            raise TransportFailure(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProtocolFailure("Invalid response format from license server") from e

    @staticmethod
    def parse_validation_response(data: Any) -> ValidationResult:
        if not isinstance(data, dict):
            raise ProtocolFailure("Invalid response format from license server")

        try:
            response = ValidationResponse.model_validate(data)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            raise ProtocolFailure(f"Invalid validation result: {field} {error['msg']}") from e

        return response.to_result()
