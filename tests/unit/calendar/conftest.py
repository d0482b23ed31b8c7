"""Shared fixtures for Google Calendar unit tests."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, create_autospec

import pytest
from google.oauth2.credentials import Credentials


@pytest.fixture()
def mock_credentials() -> MagicMock:
    """Return a mock OAuth Credentials object that reports as valid."""
    creds = create_autospec(Credentials, instance=True)
    creds.valid = True
    creds.expired = False
    creds.refresh_token = "fake-refresh-token"
    creds.to_json.return_value = '{"token": "fake"}'
    return creds


@pytest.fixture()
def mock_expired_credentials() -> MagicMock:
    """Return a mock Credentials object that is expired but has a refresh token."""
    creds = create_autospec(Credentials, instance=True)
    creds.valid = False
    creds.expired = True
    creds.refresh_token = "fake-refresh-token"
    creds.to_json.return_value = '{"token": "refreshed"}'
    return creds


@pytest.fixture()
def client_secrets_file(tmp_path: Path) -> Path:
    """Write a minimal OAuth client secrets file and return its path."""
    path = tmp_path / "credentials.json"
    path.write_text('{"installed": {"client_id": "fake", "client_secret": "fake"}}')
    return path


@pytest.fixture()
def service_account_file(tmp_path: Path) -> Path:
    """Write a service-account-shaped key file and return its path."""
    path = tmp_path / "google-service-account.json"
    path.write_text(
        json.dumps(
            {
                "type": "service_account",
                "project_id": "famcal",
                "client_email": "sync@famcal.iam.gserviceaccount.com",
            }
        )
    )
    return path
