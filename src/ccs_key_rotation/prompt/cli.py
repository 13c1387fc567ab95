"""Operator-facing commands for identity checks and key rotation.

Pattern: Prompt Renderer
-------------------------
The CLI is the human-facing boundary.  It loads settings, builds the shared
``SessionProvider`` and delegates to ``IdentityVerifier`` and ``KeyRotator``.
Rich is used for display.  Nothing here knows about IAM calls or the
rotation policy.

A new secret is shown once or written once to a 0600 file; it is never logged.
"""

from __future__ import annotations

import logging
import os
import pathlib
import signal
import threading

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ccs_key_rotation.auth.identity import IdentityVerifier
from ccs_key_rotation.auth.session import SessionError, SessionProvider
from ccs_key_rotation.config.settings import CCS_ADMIN_USER, SettingsError, load_settings
from ccs_key_rotation.iam.service import IAMError, KeyPair
from ccs_key_rotation.rotation.rotator import KeyRotator, RotationError

logger = logging.getLogger(__name__)
console = Console()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_MISMATCH = 2


def _print_banner(title: str) -> None:
    console.print(Panel(f"[bold]CCS key rotation[/bold]\n{title}", border_style="blue"))


def run_verify(config_path: str | None = None) -> int:
    """Print the IAM user behind the configured credentials."""
    _print_banner("Identity check")
    try:
        settings = load_settings(config_path)
        provider = SessionProvider(settings.credentials)
        identity = IdentityVerifier(provider, expected_name=CCS_ADMIN_USER).verify()
    except (SettingsError, SessionError, IAMError) as exc:
        console.print(f"[red]Identity check failed:[/red] {exc}")
        return EXIT_ERROR

    table = Table(title="IAM identity")
    table.add_column("User", style="bold")
    table.add_column("Expected", style="cyan")
    table.add_column("Match")
    table.add_row(
        identity.name,
        identity.expected_name,
        "[green]yes[/green]" if identity.matches else "[red]no[/red]",
    )
    console.print(table)
    return EXIT_OK if identity.matches else EXIT_MISMATCH


def run_rotate(
    config_path: str | None = None,
    identity_name: str | None = None,
    output_path: str | None = None,
) -> int:
    """Rotate the access keys and hand the new pair to the operator."""
    _print_banner("Access key rotation")
    cancel = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())

    try:
        settings = load_settings(config_path)
        provider = SessionProvider(settings.credentials)
        rotator = KeyRotator(provider, settings.rotation)
        user_name = identity_name or settings.rotation.identity_name
        console.print(f"[dim]Waiting for room to create a key for {user_name}...[/dim]")
        key_pair = rotator.rotate(user_name, cancel=cancel)
    except RotationError as exc:
        console.print(f"[red]Rotation failed[/red] (state={exc.state.value}): {exc}")
        return EXIT_ERROR
    except (SettingsError, SessionError, IAMError) as exc:
        console.print(f"[red]Rotation failed:[/red] {exc}")
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if not output_path:
        _print_key_pair(user_name, key_pair)
        return EXIT_OK

    try:
        _write_key_pair(pathlib.Path(output_path), key_pair)
    except OSError as exc:
        # The key already exists in IAM; show it rather than lose it.
        console.print(f"[red]Could not write key pair to {output_path}:[/red] {exc}")
        _print_key_pair(user_name, key_pair)
        return EXIT_ERROR
    console.print(
        f"[green]Created[/green] {key_pair.access_key_id}, written to {output_path}"
    )
    return EXIT_OK


def _print_key_pair(user_name: str, key_pair: KeyPair) -> None:
    console.print(f"[green]Created[/green] new key pair for [bold]{user_name}[/bold]")
    console.print(f"  Access key ID:     {key_pair.access_key_id}")
    console.print(f"  Secret access key: {key_pair.secret_access_key}")


def _write_key_pair(path: pathlib.Path, key_pair: KeyPair) -> None:
    data = {
        "accessKey": key_pair.access_key_id,
        "secretKey": key_pair.secret_access_key,
    }
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as fh:
        # O_CREAT only applies the mode to new files.
        os.fchmod(fd, 0o600)
        yaml.safe_dump(data, fh, default_flow_style=False)
    logger.info("Wrote key pair %s to %s", key_pair.access_key_id, path)
