"""CLI entry point — ties together settings, the AWS session and the operator commands."""

from __future__ import annotations

import argparse
import logging
import sys

from ccs_key_rotation.config.settings import DEFAULT_SETTINGS_PATH


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccs-key-rotation",
        description="Verify and rotate the access keys of the CCS service account",
    )
    parser.add_argument(
        "--config",
        default=str(DEFAULT_SETTINGS_PATH),
        help="Path to settings.yaml",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "verify",
        help="Show which IAM user the configured credentials belong to",
    )

    rotate_parser = subparsers.add_parser(
        "rotate",
        help="Delete stale access keys and create a new key pair",
    )
    rotate_parser.add_argument(
        "--identity",
        default=None,
        help="IAM user to rotate (default: rotation.identity from settings)",
    )
    rotate_parser.add_argument(
        "--output",
        default=None,
        help="Write the new key pair to this YAML file instead of printing it",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    from ccs_key_rotation.prompt.cli import run_rotate, run_verify

    if args.command == "verify":
        sys.exit(run_verify(config_path=args.config))
    sys.exit(
        run_rotate(
            config_path=args.config,
            identity_name=args.identity,
            output_path=args.output,
        )
    )


if __name__ == "__main__":
    main()
