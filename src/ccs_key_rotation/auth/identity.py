"""Check which IAM user the configured credentials belong to."""

from __future__ import annotations

import dataclasses
import logging

from ccs_key_rotation.auth.session import SessionProvider
from ccs_key_rotation.config.settings import CCS_ADMIN_USER
from ccs_key_rotation.iam.service import IdentityService

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class VerifiedIdentity:
    """Outcome of an identity check.

    A mismatch is not an error: ``matches`` is False and the caller decides
    whether to continue.
    """

    name: str
    expected_name: str

    @property
    def matches(self) -> bool:
        return self.name == self.expected_name


class IdentityVerifier:
    """Confirms the session's credentials belong to the expected service account."""

    def __init__(self, provider: SessionProvider, expected_name: str = CCS_ADMIN_USER) -> None:
        self._provider = provider
        self._expected_name = expected_name

    def verify(self) -> VerifiedIdentity:
        """Fetch the current IAM user and compare it to the expected name.

        Raises ``SessionError`` if no session is available and
        ``IdentityQueryError`` if the IAM call fails.
        """
        session = self._provider.get_session()
        service = IdentityService(session.client("iam"))
        identity = VerifiedIdentity(
            name=service.get_current_identity(),
            expected_name=self._expected_name,
        )
        if not identity.matches:
            logger.warning("The user %s is not %s", identity.name, identity.expected_name)
        else:
            logger.info("Verified IAM user %s", identity.name)
        return identity
