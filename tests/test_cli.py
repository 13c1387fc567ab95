"""Tests for the operator CLI — exit codes and where the new secret ends up."""

from __future__ import annotations

import pathlib
import stat
from unittest.mock import ANY, MagicMock, patch

import pytest
import yaml

from ccs_key_rotation.auth.identity import VerifiedIdentity
from ccs_key_rotation.iam.service import KeyCreationError, KeyPair
from ccs_key_rotation.main import build_parser, main
from ccs_key_rotation.prompt.cli import EXIT_ERROR, EXIT_MISMATCH, EXIT_OK, run_rotate, run_verify
from ccs_key_rotation.rotation.rotator import RotationTimeoutError

NEW_PAIR = KeyPair(access_key_id="AKIANEWKEY", secret_access_key="new-secret")


@pytest.fixture
def env_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OCM_AWS_ACCESS_KEY", "AKIATEST")
    monkeypatch.setenv("OCM_AWS_SECRET_KEY", "test-secret")
    monkeypatch.setenv("CLOUD_PROVIDER_REGION", "us-east-1")


class TestParser:
    def test_rotate_options(self) -> None:
        args = build_parser().parse_args(["-v", "rotate", "--identity", "svc", "--output", "k.yaml"])
        assert args.verbose
        assert args.command == "rotate"
        assert args.identity == "svc"
        assert args.output == "k.yaml"

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.usefixtures("env_credentials")
class TestVerifyCommand:
    @patch("ccs_key_rotation.prompt.cli.IdentityVerifier")
    def test_match_exits_ok(self, mock_verifier_cls: MagicMock) -> None:
        mock_verifier_cls.return_value.verify.return_value = VerifiedIdentity(
            name="osdCcsAdmin", expected_name="osdCcsAdmin"
        )
        assert run_verify() == EXIT_OK

    @patch("ccs_key_rotation.prompt.cli.IdentityVerifier")
    def test_mismatch_exit_code(self, mock_verifier_cls: MagicMock) -> None:
        mock_verifier_cls.return_value.verify.return_value = VerifiedIdentity(
            name="intruder", expected_name="osdCcsAdmin"
        )
        with pytest.raises(SystemExit) as info:
            main(["verify"])
        assert info.value.code == EXIT_MISMATCH

    @patch("ccs_key_rotation.prompt.cli.IdentityVerifier")
    def test_expected_name_is_the_ccs_admin_user(
        self, mock_verifier_cls: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CCS_IDENTITY_NAME", "svc")
        mock_verifier_cls.return_value.verify.return_value = VerifiedIdentity(
            name="svc", expected_name="osdCcsAdmin"
        )

        assert run_verify() == EXIT_MISMATCH
        mock_verifier_cls.assert_called_once_with(ANY, expected_name="osdCcsAdmin")


@pytest.mark.usefixtures("env_credentials")
class TestRotateCommand:
    @patch("ccs_key_rotation.prompt.cli.KeyRotator")
    def test_writes_key_pair_to_private_file(
        self, mock_rotator_cls: MagicMock, tmp_path: pathlib.Path
    ) -> None:
        mock_rotator_cls.return_value.rotate.return_value = NEW_PAIR
        output = tmp_path / "ccs-key.yaml"

        assert run_rotate(output_path=str(output)) == EXIT_OK

        assert yaml.safe_load(output.read_text()) == {
            "accessKey": "AKIANEWKEY",
            "secretKey": "new-secret",
        }
        assert stat.S_IMODE(output.stat().st_mode) == 0o600

    @patch("ccs_key_rotation.prompt.cli.KeyRotator")
    def test_identity_override_is_passed_through(self, mock_rotator_cls: MagicMock) -> None:
        mock_rotator_cls.return_value.rotate.return_value = NEW_PAIR

        run_rotate(identity_name="svc")

        call = mock_rotator_cls.return_value.rotate.call_args
        assert call.args == ("svc",)
        assert call.kwargs["cancel"] is not None

    @pytest.mark.parametrize(
        "error",
        [
            RotationTimeoutError("timed out", attempts=46),
            KeyCreationError("error creating key pair", retryable=False),
        ],
    )
    @patch("ccs_key_rotation.prompt.cli.KeyRotator")
    def test_failures_exit_with_error(
        self, mock_rotator_cls: MagicMock, error: Exception
    ) -> None:
        mock_rotator_cls.return_value.rotate.side_effect = error
        assert run_rotate() == EXIT_ERROR

    def test_missing_credentials_exit_with_error(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
    ) -> None:
        monkeypatch.delenv("OCM_AWS_SECRET_KEY")
        assert run_rotate(config_path=str(tmp_path / "absent.yaml")) == EXIT_ERROR

    @patch("ccs_key_rotation.prompt.cli.KeyRotator")
    def test_existing_output_file_is_made_private(
        self, mock_rotator_cls: MagicMock, tmp_path: pathlib.Path
    ) -> None:
        mock_rotator_cls.return_value.rotate.return_value = NEW_PAIR
        output = tmp_path / "ccs-key.yaml"
        output.write_text("stale: true\n")
        output.chmod(0o644)

        assert run_rotate(output_path=str(output)) == EXIT_OK

        assert stat.S_IMODE(output.stat().st_mode) == 0o600
        assert yaml.safe_load(output.read_text()) == {
            "accessKey": "AKIANEWKEY",
            "secretKey": "new-secret",
        }

    @patch("ccs_key_rotation.prompt.cli.KeyRotator")
    def test_unwritable_output_still_shows_the_new_key(
        self,
        mock_rotator_cls: MagicMock,
        tmp_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_rotator_cls.return_value.rotate.return_value = NEW_PAIR
        output = tmp_path / "missing-dir" / "ccs-key.yaml"

        assert run_rotate(output_path=str(output)) == EXIT_ERROR

        out = capsys.readouterr().out
        assert "Could not write key pair" in out
        assert "AKIANEWKEY" in out
        assert "new-secret" in out
        assert not output.exists()

    @patch("ccs_key_rotation.prompt.cli.KeyRotator")
    def test_rotation_failure_names_the_final_state(
        self, mock_rotator_cls: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_rotator_cls.return_value.rotate.side_effect = RotationTimeoutError(
            "timed out", attempts=46
        )

        assert run_rotate() == EXIT_ERROR

        assert "state=timed_out" in capsys.readouterr().out
