"""
License validation client

Periodically proves to the license authority that this application instance
holds a valid license. Verdicts are cached in memory, transient authority
outages are retried and then bridged with the last known good verdict, and a
fatal license state asks the host to terminate.
"""

__version__ = "1.0.0"

from entitlement_client.config import ClientOptions, Settings
from entitlement_client.errors import (
    ConfigurationError,
    ConnectivityFailure,
    ErrorClassifier,
    FailureCategory,
    LicenseClientError,
    ProtocolFailure,
    TransportFailure,
    UnexpectedFailure,
)
from entitlement_client.license_client import LicenseClient
from entitlement_client.models import LicenseConfig, ValidationResult
from entitlement_client.validation import ValidationClient

__all__ = [
    "ClientOptions",
    "ConfigurationError",
    "ConnectivityFailure",
    "ErrorClassifier",
    "FailureCategory",
    "LicenseClient",
    "LicenseClientError",
    "LicenseConfig",
    "ProtocolFailure",
    "Settings",
    "TransportFailure",
    "UnexpectedFailure",
    "ValidationClient",
    "ValidationResult",
]
