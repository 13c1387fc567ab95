"""Decision logic for a single key-rotation poll.

Pattern: Pure Policy, Separate I/O
-----------------------------------
IAM allows a user at most two access keys.  Before a new pair can be issued
the user must hold fewer than that, which may mean deleting an old key first.
The rules for *which* key may go are kept here, free of any AWS calls, so they
can be tested with plain data:

  - Fewer keys than the quota: there is room, the poll is satisfied.
  - Exactly the quota: every key older than the age guard is deleted.  The
    poll is *not* satisfied even when something was deleted; the next poll's
    fresh listing has to confirm the room.
  - More than the quota: IAM should never allow this, so it is a hard failure.

The age guard exists because a key rotated a moment ago may still be in use
by a concurrent consumer, for example a cluster install that read the previous
credentials.  Deleting it too early breaks that in-flight operation.
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
from typing import Sequence

from ccs_key_rotation.iam.service import AccessKey

DEFAULT_MAX_KEYS = 2
DEFAULT_MIN_KEY_AGE = datetime.timedelta(minutes=5)


class PollState(str, enum.Enum):
    POLLING = "polling"
    SATISFIED = "satisfied"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclasses.dataclass(frozen=True)
class RotationDecision:
    """What one poll iteration should do with the listed keys.

    Attributes:
        state:     ``SATISFIED`` to proceed to creation, ``POLLING`` to poll
                   again, ``FAILED`` to abort.
        to_delete: Keys old enough to be retired this iteration.
        reason:    Human-readable explanation, used in logs and errors.
    """

    state: PollState
    to_delete: tuple[AccessKey, ...] = ()
    reason: str = ""


def stale_keys(
    keys: Sequence[AccessKey],
    now: datetime.datetime,
    min_key_age: datetime.timedelta = DEFAULT_MIN_KEY_AGE,
) -> tuple[AccessKey, ...]:
    """Return the keys created strictly before ``now - min_key_age``."""
    cutoff = now - min_key_age
    return tuple(key for key in keys if key.created_at < cutoff)


def decide(
    keys: Sequence[AccessKey],
    now: datetime.datetime,
    *,
    max_keys: int = DEFAULT_MAX_KEYS,
    min_key_age: datetime.timedelta = DEFAULT_MIN_KEY_AGE,
) -> RotationDecision:
    count = len(keys)
    if count < max_keys:
        return RotationDecision(
            state=PollState.SATISFIED,
            reason=f"{count} of {max_keys} keys in use",
        )
    if count == max_keys:
        to_delete = stale_keys(keys, now, min_key_age)
        if to_delete:
            reason = f"deleting {len(to_delete)} key(s) older than {min_key_age}"
        else:
            reason = f"all {count} keys younger than {min_key_age}, waiting"
        return RotationDecision(state=PollState.POLLING, to_delete=to_delete, reason=reason)
    return RotationDecision(
        state=PollState.FAILED,
        reason=f"unable to generate key pair: {count} keys exceed the quota of {max_keys}",
    )
