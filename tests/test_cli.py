"""Tests for CLI argument parsing and the token command."""

from __future__ import annotations

import pytest

from codementor import __version__
from codementor.auth.tokens import TokenVerifier
from codementor.cli import _build_parser, main
from tests.factories import TEST_SECRET


class TestArgParser:
    def test_version_flag(self) -> None:
        args = _build_parser().parse_args(["--version"])
        assert args.version is True

    def test_serve_defaults(self) -> None:
        args = _build_parser().parse_args(["serve"])
        assert args.command == "serve"
        assert args.host == "127.0.0.1"
        assert args.port == 8000
        assert args.reload is False

    def test_worker_concurrency(self) -> None:
        args = _build_parser().parse_args(["worker", "-c", "2"])
        assert args.command == "worker"
        assert args.concurrency == 2

    def test_token_options(self) -> None:
        args = _build_parser().parse_args(
            ["token", "user-9", "--email", "a@b.c", "--role", "admin"]
        )
        assert args.user_id == "user-9"
        assert args.email == "a@b.c"
        assert args.role == "admin"
        assert args.ttl is None

    def test_token_rejects_unknown_role(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["token", "u", "--role", "root"])

    def test_no_command(self) -> None:
        args = _build_parser().parse_args([])
        assert args.command is None


class TestMain:
    def test_version_prints(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--version"])
        assert capsys.readouterr().out.strip() == f"codementor {__version__}"

    def test_token_is_verifiable(
        self,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("AUTH_SECRET", TEST_SECRET)
        main(["token", "user-9", "--email", "a@b.c"])
        token = capsys.readouterr().out.strip()

        principal = TokenVerifier(TEST_SECRET).verify(token)
        assert principal.user_id == "user-9"
        assert principal.email == "a@b.c"
        assert principal.is_admin is False

    def test_worker_rejects_zero_concurrency(self) -> None:
        with pytest.raises(SystemExit):
            main(["worker", "--concurrency", "0"])
