"""Shared fixtures for tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from helpers import USER, FakeClock

from ccs_key_rotation.auth.session import SessionProvider
from ccs_key_rotation.config.settings import AWSCredentials


@pytest.fixture
def credentials() -> AWSCredentials:
    return AWSCredentials(
        access_key_id="AKIATESTACCESSKEY",
        secret_access_key="test-secret-value",
        region="us-east-1",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def iam_client() -> MagicMock:
    client = MagicMock()
    client.create_access_key.return_value = {
        "AccessKey": {
            "UserName": USER,
            "AccessKeyId": "AKIANEWKEY",
            "SecretAccessKey": "new-secret",
            "Status": "Active",
        }
    }
    return client


@pytest.fixture
def provider(iam_client: MagicMock) -> MagicMock:
    """A SessionProvider whose session hands out *iam_client*."""
    mock_provider = MagicMock(spec=SessionProvider)
    mock_provider.get_session.return_value.client.return_value = iam_client
    return mock_provider
