from pydantic import AllowInfNan, BaseModel, ConfigDict, Strict, StrictBool, StrictInt
from typing import Annotated, Optional, Union


class LicenseConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    applicationName: str
    licenseKey: str
    organizationId: str
    fingerprint: str


class ValidationResult(BaseModel):
    valid: bool
    expiryDaysLeft: Optional[int] = None
    activeGracePeriod: bool = False
    isTrial: bool = False


# The json decoder turns 1e400, NaN and Infinity into non-finite floats
FiniteStrictFloat = Annotated[float, Strict(), AllowInfNan(False)]


class ValidationResponse(BaseModel):
    """Strict wire shape of the authority's answer."""

    model_config = ConfigDict(extra="ignore")

    valid: StrictBool
    expiryDaysLeft: Optional[Union[StrictInt, FiniteStrictFloat]] = None
    activeGracePeriod: StrictBool = False
    isTrial: StrictBool = False

    def to_result(self) -> ValidationResult:
        days = self.expiryDaysLeft
        return ValidationResult(
            valid=self.valid,
            expiryDaysLeft=int(days) if days is not None else None,
            activeGracePeriod=self.activeGracePeriod,
            isTrial=self.isTrial,
        )


class LicenseValidationRequest(BaseModel):
    licenseKey: str
    fingerprint: str


# Synthetic results used when the authority cannot give a verdict
OPTIMISTIC_FALLBACK = ValidationResult(
    valid=True, expiryDaysLeft=7, activeGracePeriod=False, isTrial=False
)
HARD_INVALID = ValidationResult(
    valid=False, expiryDaysLeft=0, activeGracePeriod=False, isTrial=False
)


class LicenseStatusResponse(BaseModel):
    applicationName: str
    valid: bool
    expiryDaysLeft: Optional[int] = None
    activeGracePeriod: bool = False
    isTrial: bool = False
    refreshActive: bool = False


class CacheClearResponse(BaseModel):
    success: bool
    message: str


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    version: str
    applicationName: Optional[str] = None
    fingerprint: Optional[str] = None
