import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Iterable, Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from entitlement_client.config import DEFAULT_REFRESH_INTERVAL_SECONDS
from entitlement_client.errors import ConfigurationError, format_error_message
from entitlement_client.validation import ValidationClient

logger = logging.getLogger(__name__)

TerminationHandler = Callable[[str], Union[None, Awaitable[None]]]

REFRESH_JOB_ID = "license_refresh"

# Failure text that means the license itself is gone, not the authority
FATAL_KEYWORDS = (
    "invalid license",
    "expired",
    "unauthorized",
    "forbidden",
)


async def call_termination_handler(handler: TerminationHandler, reason: str) -> None:
    outcome = handler(reason)
    if inspect.isawaitable(outcome):
        await outcome


class BackgroundRefreshManager:
    """
    Re-validate the license on a fixed interval.

    Each tick only refreshes the cache and the status log. A tick failing with
    a fatal license error stops the schedule and asks the host to terminate;
    every other failure is logged and the next tick runs as planned.
    """

    def __init__(
        self,
        client: ValidationClient,
        termination_handler: TerminationHandler,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        log: Optional[logging.Logger] = None,
        fatal_keywords: Iterable[str] = FATAL_KEYWORDS,
    ):
        if refresh_interval_seconds <= 0:
            raise ConfigurationError(
                "refresh_interval_seconds must be positive", field="refresh_interval_seconds"
            )

        self.client = client
        self.termination_handler = termination_handler
        self.refresh_interval_seconds = refresh_interval_seconds
        self.logger = log or logger
        self.fatal_keywords = tuple(k.lower() for k in fatal_keywords)
        self.scheduler: Optional[AsyncIOScheduler] = None

    def start(self) -> None:
        if self.is_active():
            self.logger.warning("Background refresh is already running")
            return

        self.logger.info(
            f"Starting background license refresh with interval: {self.refresh_interval_seconds}s"
        )
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_tick,
            "interval",
            seconds=self.refresh_interval_seconds,
            id=REFRESH_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()

    def stop(self) -> None:
        if not self.is_active():
            return

        self.logger.info("Stopping background license refresh")
        scheduler, self.scheduler = self.scheduler, None
        scheduler.shutdown(wait=False)

    def is_active(self) -> bool:
        return self.scheduler is not None

    async def _run_tick(self) -> None:
        tick = asyncio.ensure_future(self.refresh())
        try:
            await asyncio.shield(tick)
        except asyncio.CancelledError:
            # Scheduler shutdown cancels executor futures; the tick still runs to completion
            await tick

    async def refresh(self) -> None:
        if not self.is_active():
            return

        try:
            self.logger.debug("Performing background license refresh")
            await self.client.validate()
            self.logger.debug("Background license refresh completed successfully")
        except Exception as e:
            message = format_error_message(e)
            self.logger.error(f"Background license refresh failed: {message}")

            if self.should_terminate(e):
                self.logger.error(
                    "Critical license error during background refresh - terminating application"
                )
                self.stop()
                await call_termination_handler(self.termination_handler, message)

    def should_terminate(self, error: BaseException) -> bool:
        message = format_error_message(error).lower()
        return any(keyword in message for keyword in self.fatal_keywords)
