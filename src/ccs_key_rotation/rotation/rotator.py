"""Rotate the access key pair of the CCS service account.

Pattern: Bounded Poll Loop
---------------------------
``KeyRotator.rotate`` makes room for a new key and then creates it:

  1. Poll immediately, then once every ``poll_interval_seconds``.  Each poll
     lists the user's keys and applies ``policy.decide``, deleting the keys the
     policy marks as stale.
  2. Transient IAM failures (listing or deleting) are logged and the loop
     keeps polling.  Unrecoverable ones end the rotation at once.
  3. The loop ends on the first satisfied poll, when ``timeout_seconds``
     elapses, or when the caller sets the cancellation event.
  4. A single ``CreateAccessKey`` call follows.  Its failure is final.

Delete and create are not atomic.  If the process dies in between, the user
is simply left with one key fewer and the next rotation creates it.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
import threading
import time
from typing import Callable

from ccs_key_rotation.auth.session import SessionProvider
from ccs_key_rotation.config.settings import RotationSettings
from ccs_key_rotation.iam.service import (
    AccessKey,
    IAMError,
    IdentityService,
    KeyDeleteError,
    KeyListError,
    KeyPair,
)
from ccs_key_rotation.rotation.policy import PollState, RotationDecision, decide

logger = logging.getLogger(__name__)

Waiter = Callable[[threading.Event, float], bool]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _wait_on_event(cancel: threading.Event, seconds: float) -> bool:
    return cancel.wait(seconds)


class RotationError(Exception):
    """Base class for rotations that could not make room for a new key."""

    state = PollState.FAILED


class KeyPairGenerationError(RotationError):
    """Raised when the key listing is in a state the policy cannot act on."""


class RotationTimeoutError(RotationError):
    """Raised when the user still had no room for a new key at the deadline.

    Attributes:
        attempts:   Number of polls performed.
        last_error: The most recent transient IAM error, if any.
    """

    state = PollState.TIMED_OUT

    def __init__(self, message: str, attempts: int, last_error: IAMError | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RotationCancelledError(RotationError):
    """Raised when the caller cancels a rotation before it completes."""


@dataclasses.dataclass(frozen=True)
class RotationAttempt:
    """One poll iteration: the listing it saw, what it decided, what went wrong."""

    number: int
    keys: tuple[AccessKey, ...]
    decision: RotationDecision
    error: IAMError | None = None

    @property
    def satisfied(self) -> bool:
        return self.error is None and self.decision.state is PollState.SATISFIED


class KeyRotator:
    """Deletes stale access keys and issues a replacement key pair.

    ``clock``, ``utcnow`` and ``wait`` exist so the poll loop can be driven by
    a fake clock; production code leaves them at their defaults.
    """

    def __init__(
        self,
        provider: SessionProvider,
        settings: RotationSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        utcnow: Callable[[], datetime.datetime] = _utcnow,
        wait: Waiter = _wait_on_event,
    ) -> None:
        self._provider = provider
        self._settings = settings or RotationSettings()
        self._clock = clock
        self._utcnow = utcnow
        self._wait = wait

    def rotate(
        self,
        identity_name: str | None = None,
        cancel: threading.Event | None = None,
    ) -> KeyPair:
        """Make room for and create a new access key pair for *identity_name*.

        The same user name is used for listing, deleting and creating keys.

        Raises ``SessionError`` when no session is available,
        ``RotationTimeoutError`` / ``RotationCancelledError`` /
        ``KeyPairGenerationError`` when no room could be made, an unrecoverable
        ``KeyListError`` / ``KeyDeleteError`` as-is, and ``KeyCreationError``
        when the final create call fails.
        """
        user_name = identity_name or self._settings.identity_name
        cancel = cancel or threading.Event()

        session = self._provider.get_session()
        service = IdentityService(session.client("iam"))

        self._wait_for_capacity(service, user_name, cancel)

        key_pair = service.create_access_key(user_name)
        logger.info(
            "Created new key pair for %s — access_key_id=%s",
            user_name,
            key_pair.access_key_id,
        )
        return key_pair

    # -- private helpers -----------------------------------------------------

    def _wait_for_capacity(
        self,
        service: IdentityService,
        user_name: str,
        cancel: threading.Event,
    ) -> RotationAttempt:
        settings = self._settings
        deadline = self._clock() + settings.timeout_seconds
        last_error: IAMError | None = None
        number = 0

        while True:
            if cancel.is_set():
                raise RotationCancelledError(f"rotation for {user_name} cancelled")

            number += 1
            attempt = self._poll(service, user_name, number)
            logger.debug(
                "Poll %d for %s: %d key(s), state=%s, reason=%s",
                attempt.number,
                user_name,
                len(attempt.keys),
                attempt.decision.state.value,
                attempt.decision.reason,
            )

            if attempt.satisfied:
                return attempt
            if attempt.decision.state is PollState.FAILED:
                raise KeyPairGenerationError(attempt.decision.reason)
            if attempt.error is not None:
                last_error = attempt.error

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.error(
                    "Rotation for %s %s after %d poll(s)",
                    user_name,
                    PollState.TIMED_OUT.value,
                    number,
                )
                raise RotationTimeoutError(
                    f"timed out after {settings.timeout_seconds:.0f}s waiting for "
                    f"{user_name} to hold fewer than {settings.max_keys} access keys",
                    attempts=number,
                    last_error=last_error,
                ) from last_error

            if self._wait(cancel, min(settings.poll_interval_seconds, remaining)):
                raise RotationCancelledError(f"rotation for {user_name} cancelled")

    def _poll(self, service: IdentityService, user_name: str, number: int) -> RotationAttempt:
        try:
            keys = tuple(service.list_access_keys(user_name))
        except KeyListError as exc:
            if not exc.retryable:
                raise
            logger.warning("error listing keys: %s", exc)
            return RotationAttempt(
                number=number,
                keys=(),
                decision=RotationDecision(state=PollState.POLLING, reason="listing failed"),
                error=exc,
            )

        now = self._utcnow()
        decision = decide(
            keys,
            now,
            max_keys=self._settings.max_keys,
            min_key_age=datetime.timedelta(seconds=self._settings.min_key_age_seconds),
        )

        for key in decision.to_delete:
            logger.info(
                "Deleting access key %s for %s, created %s (age %s)",
                key.access_key_id,
                user_name,
                key.created_at.isoformat(),
                key.age(now),
            )
            try:
                service.delete_access_key(user_name, key.access_key_id)
            except KeyDeleteError as exc:
                if not exc.retryable:
                    raise
                logger.warning("error deleting key: %s", exc)
                return RotationAttempt(number=number, keys=keys, decision=decision, error=exc)

        return RotationAttempt(number=number, keys=keys, decision=decision)
