"""
Shared fixtures for the license client tests.
"""

import logging
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def identity() -> dict:
    return {
        "application_name": "test-app",
        "license_key": "test-license-key",
        "organization_id": "test-org-id",
    }
