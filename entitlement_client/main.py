import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request

from entitlement_client import __version__
from entitlement_client.config import Settings, get_settings
from entitlement_client.errors import LicenseClientError, format_error_message
from entitlement_client.license_client import LicenseClient
from entitlement_client.models import (
    CacheClearResponse,
    HealthCheckResponse,
    LicenseStatusResponse,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def build_license_client(settings: Settings) -> LicenseClient:
    return LicenseClient(
        settings.APPLICATION_NAME,
        settings.LICENSE_KEY,
        settings.ORGANIZATION_ID,
        options=settings.to_client_options(),
    )


def get_license_client(request: Request) -> LicenseClient:
    return request.app.state.license_client


def create_app(
    license_client: Optional[LicenseClient] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    client = license_client or build_license_client(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await client.initialize()
        try:
            yield
        finally:
            client.shutdown()

    app = FastAPI(
        title="License Validation Client Service",
        description="Periodic license validation against the license authority",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.license_client = client

    @app.post("/api/license/validate", response_model=ValidationResult)
    async def validate_license(license_client: LicenseClient = Depends(get_license_client)):
        """
        Validate license now.

        Served from cache when a fresh verdict exists. An invalid license
        triggers application termination.
        """
        try:
            return await license_client.validate()
        except LicenseClientError as e:
            raise HTTPException(status_code=503, detail=format_error_message(e))

    @app.get("/api/license/status", response_model=LicenseStatusResponse)
    async def get_license_status(license_client: LicenseClient = Depends(get_license_client)):
        """
        Get current license status.

        Reports the verdict without terminating the application.
        """
        validation_client = license_client.get_validation_client()
        result = await validation_client.validate()
        return LicenseStatusResponse(
            applicationName=validation_client.config.applicationName,
            refreshActive=license_client.is_refresh_active(),
            **result.model_dump(),
        )

    @app.delete("/api/license/cache", response_model=CacheClearResponse)
    async def clear_license_cache(license_client: LicenseClient = Depends(get_license_client)):
        license_client.clear_cache()
        return {"success": True, "message": "License cache cleared"}

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check(license_client: LicenseClient = Depends(get_license_client)):
        config = license_client.get_validation_client().get_config()
        return {
            "status": "healthy",
            "service": "license-client",
            "version": __version__,
            "applicationName": config.applicationName,
            "fingerprint": config.fingerprint,
        }

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
