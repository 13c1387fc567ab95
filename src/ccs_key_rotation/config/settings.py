"""Settings for the CCS session and key rotation.

Pattern: File Defaults, Environment Overrides
----------------------------------------------
A YAML file (``config/settings.yaml``) carries the non-secret defaults:
region, the service-account name and the rotation tunables.  Credential
material normally arrives through the environment so that it never has to be
written to disk next to the code.  Environment values always win over the file.

The key layout mirrors the one used by the cluster-provisioning harness
(``ocm.aws.accessKey`` / ``ocm.aws.secretKey`` / ``cloudProvider.region``) so
an existing harness config file can be pointed at directly.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "settings.yaml"

# The IAM user that CCS clusters are provisioned with.
CCS_ADMIN_USER = "osdCcsAdmin"

_ENV_ACCESS_KEY = "OCM_AWS_ACCESS_KEY"
_ENV_SECRET_KEY = "OCM_AWS_SECRET_KEY"
_ENV_REGION = "CLOUD_PROVIDER_REGION"
_ENV_IDENTITY = "CCS_IDENTITY_NAME"


class SettingsError(Exception):
    """Raised when the settings file is malformed or a value cannot be parsed."""


def parse_duration(value: str | int | float) -> float:
    """Parse a Vault-style duration string to seconds.

    Examples: ``"2m"`` → 120, ``"1h"`` → 3600, ``"300s"`` → 300, ``"300"`` → 300.
    """
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise SettingsError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    s = value.strip()
    try:
        if s.endswith("m"):
            return float(s[:-1]) * 60
        if s.endswith("h"):
            return float(s[:-1]) * 3600
        if s.endswith("s"):
            return float(s[:-1])
        return float(s)
    except ValueError as exc:
        raise SettingsError(f"Invalid duration: {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class AWSCredentials:
    """Static credential material used to build the AWS session.

    Attributes:
        access_key_id:     Access key of the service account.
        secret_access_key: Matching secret.  Excluded from ``repr``.
        region:            AWS region name (e.g. ``"us-east-1"``).
    """

    access_key_id: str
    secret_access_key: str = dataclasses.field(repr=False)
    region: str

    def missing_fields(self) -> list[str]:
        return [
            field.name
            for field in dataclasses.fields(self)
            if not getattr(self, field.name)
        ]


@dataclasses.dataclass(frozen=True)
class RotationSettings:
    """Tunables for the key-rotation poll loop.

    Attributes:
        identity_name:         IAM user whose keys are rotated.
        poll_interval_seconds: Wait between poll iterations.
        timeout_seconds:       Overall ceiling for making room for a new key.
        min_key_age_seconds:   A key younger than this is never deleted.
        max_keys:              IAM quota of access keys per user.
    """

    identity_name: str = CCS_ADMIN_USER
    poll_interval_seconds: float = 2 * 60
    timeout_seconds: float = 90 * 60
    min_key_age_seconds: float = 5 * 60
    max_keys: int = 2

    def __post_init__(self) -> None:
        for name in ("poll_interval_seconds", "timeout_seconds", "min_key_age_seconds"):
            if getattr(self, name) <= 0:
                raise SettingsError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.max_keys < 1:
            raise SettingsError(f"max_keys must be at least 1, got {self.max_keys!r}")


@dataclasses.dataclass(frozen=True)
class Settings:
    credentials: AWSCredentials
    rotation: RotationSettings


def load_settings(
    path: str | pathlib.Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Load settings from *path* and apply environment overrides.

    A missing file is not an error: every value can come from the environment.
    Raises ``SettingsError`` if the file is not a YAML mapping, a duration or
    key count cannot be parsed, or a rotation tunable is out of range.
    """
    settings_path = pathlib.Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    env = os.environ if environ is None else environ
    data = _load_file(settings_path)

    aws_block: dict[str, Any] = (data.get("ocm") or {}).get("aws") or {}
    provider_block: dict[str, Any] = data.get("cloudProvider") or {}
    rotation_block: dict[str, Any] = data.get("rotation") or {}

    credentials = AWSCredentials(
        access_key_id=env.get(_ENV_ACCESS_KEY) or aws_block.get("accessKey", ""),
        secret_access_key=env.get(_ENV_SECRET_KEY) or aws_block.get("secretKey", ""),
        region=env.get(_ENV_REGION) or provider_block.get("region", ""),
    )

    defaults = RotationSettings()
    rotation = RotationSettings(
        identity_name=env.get(_ENV_IDENTITY)
        or rotation_block.get("identity", defaults.identity_name),
        poll_interval_seconds=parse_duration(
            rotation_block.get("pollInterval", defaults.poll_interval_seconds)
        ),
        timeout_seconds=parse_duration(
            rotation_block.get("timeout", defaults.timeout_seconds)
        ),
        min_key_age_seconds=parse_duration(
            rotation_block.get("minKeyAge", defaults.min_key_age_seconds)
        ),
        max_keys=_parse_count(rotation_block.get("maxKeys", defaults.max_keys)),
    )

    logger.debug(
        "Loaded settings from %s — region=%s, identity=%s, poll=%ss, timeout=%ss",
        settings_path,
        credentials.region,
        rotation.identity_name,
        rotation.poll_interval_seconds,
        rotation.timeout_seconds,
    )
    return Settings(credentials=credentials, rotation=rotation)


def _load_file(settings_path: pathlib.Path) -> dict[str, Any]:
    if not settings_path.exists():
        logger.debug("Settings file %s not found; using environment only", settings_path)
        return {}
    with open(settings_path) as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Settings file must contain a mapping: {settings_path}")
    return data


def _parse_count(value: Any) -> int:
    if isinstance(value, bool):
        raise SettingsError(f"Invalid key count: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"Invalid key count: {value!r}") from exc
