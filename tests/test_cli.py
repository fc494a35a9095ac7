"""Tests for argument parsing and the CLI entry point."""

from unittest.mock import MagicMock, patch

import pytest

from rocklock import cli
from rocklock.args import parse_args
from rocklock.constants import ExitCodes
from rocklock.errors import (
    ChecksumMismatchError,
    ConfigError,
    LockfileBusyError,
    PackageNotFoundError,
    TransientFetchError,
    VersionParseError,
)
from rocklock.service import BuildDescriptor, OutdatedPackage, OutdatedStatus, VerifyIssue, VerifyReport
from rocklock.versioning.version import parse_version


class TestArgs:
    """Sub-commands and shared options."""

    def test_install_options(self):
        args = parse_args(["install", "-C", "proj", "-j", "4", "--no-dev", "--loglevel", "debug"])
        assert args.COMMAND == "install"
        assert args.PROJECT_DIR == "proj"
        assert args.CONCURRENCY == 4
        assert args.NO_DEV is True
        assert args.LOG_LEVEL == "DEBUG"

    def test_update_packages(self):
        assert parse_args(["update", "lpeg", "luasocket"]).PACKAGES == ["lpeg", "luasocket"]
        assert parse_args(["update"]).PACKAGES == []

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


class TestExitCodes:
    """Error families map to distinct exit codes."""

    @pytest.mark.parametrize(
        "exc,code",
        [
            (LockfileBusyError("package.lock.lock"), ExitCodes.LOCKED),
            (ChecksumMismatchError("a", "1.0.0", "sha256:00", "sha256:11"), ExitCodes.INTEGRITY_ERROR),
            (TransientFetchError("a", "https://x.test/a", 3, "timeout"), ExitCodes.CONNECTION_ERROR),
            (PackageNotFoundError("ghost", ["app (manifest)"]), ExitCodes.RESOLUTION_ERROR),
            (VersionParseError("banana"), ExitCodes.RESOLUTION_ERROR),
            (ConfigError("bad"), ExitCodes.FILE_ERROR),
            (OSError("disk"), ExitCodes.FILE_ERROR),
        ],
    )
    def test_mapping(self, exc, code):
        assert cli.exit_code_for(exc) is code


class TestRun:
    """Command dispatch against a stubbed service."""

    def test_install_prints_summary(self, capsys):
        service = MagicMock()
        service.install.return_value.lock.__len__.return_value = 2
        service.install.return_value.diff.summary.return_value = "2 added, 0 updated, 0 removed, 0 unchanged"
        service.install.return_value.builds = [BuildDescriptor("lfs", "1.8.0", "make", None)]

        code = cli.run(parse_args(["install"]), service=service)

        out = capsys.readouterr().out
        assert code is ExitCodes.SUCCESS
        assert "Locked 2 package(s): 2 added" in out
        assert "native build required: lfs 1.8.0 (make)" in out

    def test_update_passes_names(self):
        service = MagicMock()
        service.update.return_value.builds = []
        cli.run(parse_args(["update", "lpeg"]), service=service)
        service.update.assert_called_once_with(["lpeg"])

    def test_update_all(self):
        service = MagicMock()
        service.update.return_value.builds = []
        cli.run(parse_args(["update"]), service=service)
        service.update.assert_called_once_with(None)

    def test_verify_failures(self, capsys):
        service = MagicMock()
        service.verify.return_value = VerifyReport(checked=3, issues=[VerifyIssue("a", "archive missing from cache")])
        code = cli.run(parse_args(["verify"]), service=service)
        assert code is ExitCodes.INTEGRITY_ERROR
        assert "a: archive missing from cache" in capsys.readouterr().out

    def test_tree(self, capsys):
        service = MagicMock()
        service.tree.return_value = ["app@1.0.0", "`-- a@1.0.0"]
        assert cli.run(parse_args(["tree"]), service=service) is ExitCodes.SUCCESS
        assert capsys.readouterr().out == "app@1.0.0\n`-- a@1.0.0\n"


    def test_outdated(self, capsys):
        service = MagicMock()
        service.outdated.return_value = [
            OutdatedPackage("a", "^1.0", OutdatedStatus.OUTDATED, parse_version("1.0.0"),
                            parse_version("1.2.0"), parse_version("2.0.0")),
            OutdatedPackage("busted", "^2", OutdatedStatus.NOT_INSTALLED,
                            latest=parse_version("2.2.0"), newest=parse_version("2.2.0"), dev=True),
            OutdatedPackage("ghost", "*", OutdatedStatus.NOT_FOUND),
        ]

        assert cli.run(parse_args(["outdated"]), service=service) is ExitCodes.SUCCESS

        out = capsys.readouterr().out
        assert "a (^1.0): 1.0.0 -> 1.2.0 (newest 2.0.0) [outdated]" in out
        assert "busted (^2, dev): (not installed) -> 2.2.0 [not installed]" in out
        assert "ghost (*): not found in the index" in out
        assert "1 outdated, 1 not installed, 1 not found" in out

    def test_outdated_without_dependencies(self, capsys):
        service = MagicMock()
        service.outdated.return_value = []
        cli.run(parse_args(["outdated"]), service=service)
        assert capsys.readouterr().out == "No dependencies to check\n"

class TestMain:
    """Process exit status."""

    def test_error_becomes_exit_code(self):
        with patch("rocklock.cli.run", side_effect=LockfileBusyError("package.lock.lock")), \
                patch("rocklock.cli.configure_logging"):
            with pytest.raises(SystemExit) as info:
                cli.main(["install"])
        assert info.value.code == ExitCodes.LOCKED.value

    def test_success(self):
        with patch("rocklock.cli.run", return_value=ExitCodes.SUCCESS), \
                patch("rocklock.cli.configure_logging"):
            with pytest.raises(SystemExit) as info:
                cli.main(["verify"])
        assert info.value.code == 0
