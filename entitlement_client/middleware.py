import logging
from typing import Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from entitlement_client.errors import format_error_message
from entitlement_client.license_client import LicenseClient

logger = logging.getLogger(__name__)


class LicenseMiddleware(BaseHTTPMiddleware):
    """
    Block requests while the application is not licensed.

    Register with app.add_middleware(LicenseMiddleware, license_client=client).
    """

    def __init__(
        self,
        app: ASGIApp,
        license_client: LicenseClient,
        exempt_paths: Iterable[str] = ("/health",),
        log: Optional[logging.Logger] = None,
    ):
        super().__init__(app)
        self.license_client = license_client
        self.exempt_paths = frozenset(exempt_paths)
        self.logger = log or logger

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        try:
            result = await self.license_client.validate()
        except Exception as e:
            self.logger.error(f"License middleware error: {format_error_message(e)}")
            return JSONResponse(
                status_code=500,
                content={"error": "License validation error", "code": "LICENSE_ERROR"},
            )

        if not result.valid:
            self.logger.error("License validation failed - blocking request")
            return JSONResponse(
                status_code=403,
                content={"error": "License validation failed", "code": "INVALID_LICENSE"},
            )

        self.logger.debug("License validation passed - proceeding with request")
        return await call_next(request)
