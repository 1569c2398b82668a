import logging
import os
import signal
from typing import Optional

from entitlement_client.config import ClientOptions
from entitlement_client.errors import LicenseClientError, format_error_message
from entitlement_client.models import ValidationResult
from entitlement_client.refresh import (
    BackgroundRefreshManager,
    TerminationHandler,
    call_termination_handler,
)
from entitlement_client.validation import ValidationClient

logger = logging.getLogger(__name__)


def terminate_process(reason: str) -> None:
    """
    Default termination handler.

    Sends SIGTERM to this process so the host runs its normal shutdown path.
    """
    logger.error(f"Application termination requested: {reason}")
    os.kill(os.getpid(), signal.SIGTERM)


class LicenseClient:
    def __init__(
        self,
        application_name: str,
        license_key: str,
        organization_id: str,
        options: Optional[ClientOptions] = None,
        log: Optional[logging.Logger] = None,
        termination_handler: Optional[TerminationHandler] = None,
        validation_client: Optional[ValidationClient] = None,
    ):
        self.options = options or ClientOptions()
        self.logger = log or logger
        self.termination_handler = termination_handler or terminate_process
        self.validation_client = validation_client or ValidationClient(
            application_name,
            license_key,
            organization_id,
            options=self.options,
            log=self.logger,
        )
        self.refresh_manager = BackgroundRefreshManager(
            self.validation_client,
            self._terminate,
            refresh_interval_seconds=self.options.refresh_interval_seconds,
            log=self.logger,
        )
        self.is_initialized = False

        self.logger.info(f"License client created for application: {application_name}")

    async def initialize(self) -> None:
        """
        Validate once and start background refresh.

        A license that is invalid at startup terminates the application.
        """
        if self.is_initialized:
            self.logger.warning("License client is already initialized")
            return

        try:
            self.logger.info("Initializing license client...")
            result = await self.validation_client.validate()
        except Exception as e:
            message = f"Failed to initialize license client: {format_error_message(e)}"
            self.logger.error(message)
            await self._terminate(message)
            return

        if not result.valid:
            message = "Initial license validation failed for application"
            self.logger.error(message)
            await self._terminate(message)
            return

        self.refresh_manager.start()
        self.is_initialized = True
        self.logger.info("License client initialized successfully")

    async def validate(self) -> ValidationResult:
        if not self.is_initialized:
            raise LicenseClientError("License client not initialized. Call initialize() first.")

        try:
            result = await self.validation_client.validate()
        except Exception as e:
            message = f"License validation error: {format_error_message(e)}"
            self.logger.error(message)
            await self._terminate(message)
            raise

        if not result.valid:
            message = "License validation failed"
            self.logger.error(message)
            await self._terminate(message)

        return result

    def set_termination_handler(self, handler: TerminationHandler) -> None:
        self.termination_handler = handler
        self.logger.debug("Custom termination handler set")

    def shutdown(self) -> None:
        self.logger.info("Shutting down license client...")

        self.refresh_manager.stop()
        self.validation_client.close()
        self.is_initialized = False

        self.logger.info("License client shutdown completed")

    def is_refresh_active(self) -> bool:
        return self.refresh_manager.is_active()

    def clear_cache(self) -> None:
        self.validation_client.clear_cache()

    def get_validation_client(self) -> ValidationClient:
        return self.validation_client

    async def _terminate(self, reason: str) -> None:
        # Resolved at call time so set_termination_handler also covers refresh
        await call_termination_handler(self.termination_handler, reason)
