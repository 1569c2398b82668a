import hashlib

from entitlement_client.errors import ConfigurationError
from entitlement_client.models import LicenseConfig


def validate_identity(application_name: str, license_key: str, organization_id: str) -> None:
    """
    Reject identities the license authority could never accept.
    Each field must be a non-empty string.
    """
    fields = (
        ("application_name", application_name),
        ("license_key", license_key),
        ("organization_id", organization_id),
    )
    for name, value in fields:
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"{name} must be a non-empty string", field=name)


def generate_fingerprint(application_name: str, license_key: str, organization_id: str) -> str:
    """
    Derive a stable identity key for this application instance.
    Same inputs always produce the same digest, across restarts.
    """
    fingerprint_data = f"{application_name}:{license_key}:{organization_id}"
    return hashlib.sha256(fingerprint_data.encode()).hexdigest()


def build_license_config(application_name: str, license_key: str, organization_id: str) -> LicenseConfig:
    validate_identity(application_name, license_key, organization_id)

    return LicenseConfig(
        applicationName=application_name,
        licenseKey=license_key,
        organizationId=organization_id,
        fingerprint=generate_fingerprint(application_name, license_key, organization_id),
    )
