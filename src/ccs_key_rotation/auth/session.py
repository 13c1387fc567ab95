"""Lazily-initialized AWS session shared by every IAM consumer.

Pattern: Lazy Singleton with Initialization Guard
--------------------------------------------------
A ``SessionProvider`` is constructed explicitly and handed to the components
that need AWS access (``IdentityVerifier``, ``KeyRotator``).  The underlying
``boto3`` session is only built on first use, and that build runs exactly once
no matter how many threads ask for it at the same time: the first caller takes
the lock and initializes, the others block on the lock and then observe the
same outcome.

A failed initialization is remembered.  The provider does not retry on its
own; a caller that wants another attempt calls ``reset()`` explicitly.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

import boto3
import botocore.exceptions

from ccs_key_rotation.config.settings import AWSCredentials

logger = logging.getLogger(__name__)

SessionFactory = Callable[[AWSCredentials], boto3.session.Session]


class SessionError(Exception):
    """Base class for failures obtaining the AWS session."""


class SessionInitError(SessionError):
    """Raised when building the AWS session fails (bad credentials, config, network)."""


class SessionUnavailableError(SessionInitError):
    """Raised to every caller once initialization has failed.

    ``__cause__`` is the ``SessionInitError`` recorded by the failed attempt,
    which carries the underlying reason.
    """


def _build_session(credentials: AWSCredentials) -> boto3.session.Session:
    return boto3.session.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        region_name=credentials.region,
    )


class SessionProvider:
    """Owns a single AWS session, created on first ``get_session()``."""

    def __init__(
        self,
        credentials: AWSCredentials,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._credentials = credentials
        self._factory = session_factory or _build_session
        self._lock = threading.Lock()
        self._initialized = False
        self._session: boto3.session.Session | None = None
        self._init_error: SessionInitError | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get_session(self) -> boto3.session.Session:
        """Return the shared session, building it on the first call.

        After a failed initialization every caller, the initializing one
        included, receives ``SessionUnavailableError`` chained to the same
        recorded ``SessionInitError``.
        """
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._initialize()

        if self._session is None:
            raise SessionUnavailableError(
                "unable to initialize AWS session"
            ) from self._init_error
        return self._session

    def reset(self) -> None:
        """Forget the cached session or failure so the next call initializes again."""
        with self._lock:
            self._initialized = False
            self._session = None
            self._init_error = None
        logger.info("AWS session state reset")

    # -- private helpers -----------------------------------------------------

    def _initialize(self) -> None:
        # Called with the lock held.
        try:
            missing = self._credentials.missing_fields()
            if missing:
                raise SessionInitError(
                    f"AWS session configuration is incomplete, missing: {', '.join(missing)}"
                )
            try:
                self._session = self._factory(self._credentials)
            except botocore.exceptions.BotoCoreError as exc:
                raise SessionInitError(f"error initializing AWS session: {exc}") from exc
        except SessionInitError as exc:
            self._init_error = exc
            logger.error("error initializing AWS session: %s", exc)
        else:
            logger.info(
                "AWS session initialized — region=%s, access_key_id=%s",
                self._credentials.region,
                self._credentials.access_key_id,
            )
        finally:
            self._initialized = True
