"""
Cache-aside license validation with graceful degradation.

A ValidationClient answers "is this application licensed?" for one identity.
Fresh verdicts come from the license authority; when the authority cannot be
reached the last known good verdict is reused, and when nothing is cached the
client fails open for a bounded window. A definitive 4xx rejection fails
closed. Anything the classifier cannot place is raised to the caller.
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional

from entitlement_client.cache import LicenseCache
from entitlement_client.config import (
    EXPIRY_WARNING_DAYS,
    VALIDATION_CACHE_TTL_SECONDS,
    ClientOptions,
)
from entitlement_client.errors import (
    ErrorClassifier,
    FailureCategory,
    format_error_message,
)
from entitlement_client.fingerprint import build_license_config
from entitlement_client.models import (
    HARD_INVALID,
    OPTIMISTIC_FALLBACK,
    LicenseConfig,
    ValidationResult,
)
from entitlement_client.transport import LicenseApiClient

logger = logging.getLogger(__name__)


def log_license_status(
    log: logging.Logger,
    result: ValidationResult,
    application_name: str,
    warning_days: Iterable[int] = EXPIRY_WARNING_DAYS,
) -> None:
    if not result.valid:
        log.error(f"License validation failed for application: {application_name}")
        return

    log.info(f"License validation successful for application: {application_name}")

    if result.isTrial:
        log.warning(f"Application {application_name} is running on a trial license")

    if result.activeGracePeriod:
        log.warning(
            f"Application {application_name} is in grace period - license expired but still functional"
        )

    days = result.expiryDaysLeft
    if days is None:
        return
    if days in tuple(warning_days):
        log.warning(f"License for {application_name} expires in {days} days")
    elif days > 0:
        log.info(f"License for {application_name} expires in {days} days")


class ValidationClient:
    def __init__(
        self,
        application_name: str,
        license_key: str,
        organization_id: str,
        options: Optional[ClientOptions] = None,
        log: Optional[logging.Logger] = None,
        cache: Optional[LicenseCache] = None,
        api_client: Optional[LicenseApiClient] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.config = build_license_config(application_name, license_key, organization_id)
        self.options = options or ClientOptions()
        self.logger = log or logger
        self.cache_key = f"license:{self.config.fingerprint}"
        self.classifier = classifier or ErrorClassifier()
        self._cycle_lock: Optional[asyncio.Lock] = None

        self.cache = cache or LicenseCache(self.options.cache_ttl_seconds)
        self.api_client = api_client or LicenseApiClient(
            base_url=self.options.base_url,
            retry_count=self.options.retry_count,
            retry_delay_ms=self.options.retry_delay_ms,
            timeout_ms=self.options.timeout_ms,
            classifier=self.classifier,
            log=self.logger,
        )

        self.logger.info(f"License validation client initialized for application: {application_name}")

    async def validate(self) -> ValidationResult:
        cached_result = self._get_cached_result()
        if cached_result is None:
            # Ticks and request handlers share one cycle at a time
            async with self._get_cycle_lock():
                cached_result = self._get_cached_result()
                if cached_result is None:
                    return await self._validate_remote()

        self.logger.debug(
            f"Using cached license validation result for: {self.config.applicationName}"
        )
        self._log_status(cached_result)
        return cached_result

    async def _validate_remote(self) -> ValidationResult:
        try:
            result = await self.api_client.validate_license(self.config)
        except Exception as e:
            result = self._handle_validation_error(e)
        else:
            if result.valid:
                self._cache_result(result)

        self._log_status(result)
        return result

    def _get_cycle_lock(self) -> asyncio.Lock:
        if self._cycle_lock is None:
            self._cycle_lock = asyncio.Lock()
        return self._cycle_lock

    def clear_cache(self) -> None:
        try:
            self.cache.delete(self.cache_key)
            self.logger.debug(f"Cleared cache for application: {self.config.applicationName}")
        except Exception as e:
            self.logger.warning(f"Failed to clear cache: {format_error_message(e)}")

    def get_config(self) -> LicenseConfig:
        return self.config.model_copy()

    def close(self) -> None:
        self.cache.close()

    def _handle_validation_error(self, error: Exception) -> ValidationResult:
        category = self.classifier.category(error)

        if category is FailureCategory.SERVER:
            self.logger.warning(
                f"Server error during validation ({getattr(error, 'status_code', 500)}): "
                f"{format_error_message(error)}"
            )
            return self._fallback_result("server error")

        if category is FailureCategory.CONNECTIVITY:
            self.logger.warning(f"Connection error during validation: {format_error_message(error)}")
            return self._fallback_result("connection error")

        if category is FailureCategory.CLIENT:
            self.logger.error(
                f"Client error during validation ({error.status_code}): {format_error_message(error)}"
            )
            return HARD_INVALID.model_copy()

        self.logger.error(f"Unexpected validation error: {format_error_message(error)}")
        raise error

    def _fallback_result(self, reason: str) -> ValidationResult:
        cached_result = self._get_cached_result()
        if cached_result is not None:
            self.logger.info(f"Using cached result due to {reason}")
            return cached_result

        self.logger.warning("No cached result available, using fallback validation")
        return OPTIMISTIC_FALLBACK.model_copy()

    def _get_cached_result(self) -> Optional[ValidationResult]:
        try:
            cached = self.cache.get(self.cache_key)
        except Exception as e:
            self.logger.warning(f"Cache retrieval failed: {format_error_message(e)}")
            return None

        if isinstance(cached, ValidationResult):
            return cached.model_copy()
        if isinstance(cached, Mapping) and self._is_valid_cache_entry(cached):
            return ValidationResult.model_construct(**cached)
        return None

    @staticmethod
    def _is_valid_cache_entry(entry: Mapping[str, Any]) -> bool:
        return isinstance(entry.get("valid"), bool)

    def _cache_result(self, result: ValidationResult) -> None:
        try:
            self.cache.set(self.cache_key, result.model_copy(), VALIDATION_CACHE_TTL_SECONDS)
            self.logger.debug(f"Cached license validation result for: {self.config.applicationName}")
        except Exception as e:
            self.logger.warning(f"Failed to cache license result: {format_error_message(e)}")

    def _log_status(self, result: ValidationResult) -> None:
        log_license_status(
            self.logger,
            result,
            self.config.applicationName,
            self.options.expiry_warning_days,
        )
