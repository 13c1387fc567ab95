"""IAM operations used by identity verification and key rotation.

Pattern: Service Adapter
-------------------------
Everything above this module talks in terms of ``AccessKey`` and ``KeyPair``
and a small exception taxonomy; everything below it is the boto3 IAM client
and botocore exceptions.  Keeping the translation here means the rotation
loop never inspects AWS error codes itself.  It only asks whether a failure is
``retryable``.

A failure is retryable when another poll could plausibly succeed (throttling,
connection resets, a key that disappeared between list and delete).  Access
denied, an unknown user or invalid credentials will not fix themselves within
the poll window and are reported as unrecoverable.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from typing import Any

import botocore.exceptions

logger = logging.getLogger(__name__)

# Error codes that another poll iteration cannot fix.
_UNRECOVERABLE_CODES = frozenset({
    "AccessDenied",
    "AccessDeniedException",
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "UnrecognizedClientException",
    "NoSuchEntity",
})


class IAMError(Exception):
    """Base class for IAM call failures.

    Attributes:
        retryable: Whether a later poll iteration may succeed.
        code:      AWS error code, when the service returned one.
    """

    def __init__(self, message: str, *, retryable: bool = True, code: str | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class IdentityQueryError(IAMError):
    """Raised when the caller's identity cannot be fetched."""


class KeyListError(IAMError):
    """Raised when listing access keys fails."""


class KeyDeleteError(IAMError):
    """Raised when deleting an access key fails."""


class KeyCreationError(IAMError):
    """Raised when creating a new access key fails.  Never retried."""


@dataclasses.dataclass(frozen=True)
class AccessKey:
    """Metadata of an existing access key, as returned by ``ListAccessKeys``."""

    access_key_id: str
    user_name: str
    created_at: datetime.datetime
    status: str = "Active"

    def age(self, now: datetime.datetime) -> datetime.timedelta:
        return now - self.created_at

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any]) -> AccessKey:
        created_at: datetime.datetime = metadata["CreateDate"]
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=datetime.UTC)
        return cls(
            access_key_id=metadata["AccessKeyId"],
            user_name=metadata["UserName"],
            created_at=created_at,
            status=metadata.get("Status", "Active"),
        )


@dataclasses.dataclass(frozen=True)
class KeyPair:
    """A freshly issued access key.  The secret is never part of ``repr``."""

    access_key_id: str
    secret_access_key: str = dataclasses.field(repr=False)

    def __str__(self) -> str:
        return f"KeyPair(access_key_id={self.access_key_id})"


def _error_code(exc: Exception) -> str | None:
    if isinstance(exc, botocore.exceptions.ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


class IdentityService:
    """Wraps a boto3 IAM client with the four operations rotation needs."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def get_current_identity(self) -> str:
        """Return the user name of the credentials the client was built with."""
        try:
            response = self._client.get_user()
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as exc:
            code = _error_code(exc)
            raise IdentityQueryError(
                f"error fetching current IAM user: {exc}",
                retryable=code not in _UNRECOVERABLE_CODES,
                code=code,
            ) from exc
        return response["User"]["UserName"]

    def list_access_keys(self, user_name: str) -> list[AccessKey]:
        try:
            paginator = self._client.get_paginator("list_access_keys")
            keys = [
                AccessKey.from_metadata(metadata)
                for page in paginator.paginate(UserName=user_name)
                for metadata in page.get("AccessKeyMetadata", [])
            ]
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as exc:
            code = _error_code(exc)
            raise KeyListError(
                f"error listing keys for {user_name}: {exc}",
                retryable=code not in _UNRECOVERABLE_CODES,
                code=code,
            ) from exc
        return keys

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        try:
            self._client.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as exc:
            code = _error_code(exc)
            # A key that vanished between list and delete resolves on the next poll.
            retryable = code == "NoSuchEntity" or code not in _UNRECOVERABLE_CODES
            raise KeyDeleteError(
                f"error deleting key {access_key_id} for {user_name}: {exc}",
                retryable=retryable,
                code=code,
            ) from exc
        logger.info("Deleted access key %s for %s", access_key_id, user_name)

    def create_access_key(self, user_name: str) -> KeyPair:
        try:
            response = self._client.create_access_key(UserName=user_name)
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as exc:
            raise KeyCreationError(
                f"error creating key pair for {user_name}: {exc}",
                retryable=False,
                code=_error_code(exc),
            ) from exc
        access_key = response["AccessKey"]
        return KeyPair(
            access_key_id=access_key["AccessKeyId"],
            secret_access_key=access_key["SecretAccessKey"],
        )
