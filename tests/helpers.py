"""Test doubles and IAM response builders shared across test modules."""

from __future__ import annotations

import datetime
import threading
from typing import Any

import botocore.exceptions

USER = "osdCcsAdmin"


class FakeClock:
    """Drives the poll loop without sleeping: every wait advances time instantly."""

    def __init__(self, start: datetime.datetime | None = None) -> None:
        self.start = start or datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.UTC)
        self.elapsed = 0.0
        self.waits: list[float] = []

    def monotonic(self) -> float:
        return self.elapsed

    def utcnow(self) -> datetime.datetime:
        return self.start + datetime.timedelta(seconds=self.elapsed)

    def wait(self, cancel: threading.Event, seconds: float) -> bool:
        self.waits.append(seconds)
        self.elapsed += seconds
        return cancel.is_set()

    def ago(self, **delta: float) -> datetime.datetime:
        return self.utcnow() - datetime.timedelta(**delta)


def key_metadata(key_id: str, created_at: datetime.datetime, user: str = USER) -> dict[str, Any]:
    return {
        "UserName": user,
        "AccessKeyId": key_id,
        "Status": "Active",
        "CreateDate": created_at,
    }


def pages(*metadata: dict[str, Any]) -> list[dict[str, Any]]:
    """Return a single ``ListAccessKeys`` page holding *metadata*."""
    return [{"AccessKeyMetadata": list(metadata)}]


def client_error(code: str, operation: str = "ListAccessKeys") -> botocore.exceptions.ClientError:
    return botocore.exceptions.ClientError(
        {"Error": {"Code": code, "Message": f"{code} for test"}},
        operation,
    )
