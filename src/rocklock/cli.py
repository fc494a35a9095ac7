"""Command-line entry point. Thin: parses arguments and delegates to the service."""

import logging
import sys

from .args import parse_args
from .common.logging_utils import configure_logging, extra_context, is_debug_enabled
from .config import Settings
from .constants import ExitCodes
from .errors import (
    ChecksumMismatchError,
    ConfigError,
    FetchError,
    LockfileBusyError,
    ParseError,
    ResolutionError,
    RocklockError,
)
from .service import OutdatedStatus, ProjectService

logger = logging.getLogger(__name__)


def exit_code_for(exc: BaseException) -> ExitCodes:
    """Map an error family to the process exit code."""
    if isinstance(exc, LockfileBusyError):
        return ExitCodes.LOCKED
    if isinstance(exc, ChecksumMismatchError):
        return ExitCodes.INTEGRITY_ERROR
    if isinstance(exc, FetchError):
        return ExitCodes.CONNECTION_ERROR
    if isinstance(exc, (ResolutionError, ParseError)):
        return ExitCodes.RESOLUTION_ERROR
    return ExitCodes.FILE_ERROR


def format_outdated(row) -> str:
    label = f"{row.name} ({row.constraint}" + (", dev)" if row.dev else ")")
    if row.status is OutdatedStatus.NOT_FOUND:
        return f"{label}: not found in the index"
    current = row.current if row.current is not None else "(not installed)"
    latest = row.latest if row.latest is not None else "(none allowed)"
    line = f"{label}: {current} -> {latest}"
    if row.newest is not None and row.newest != row.latest:
        line += f" (newest {row.newest})"
    return f"{line} [{row.status.value}]"


def run(args, service=None) -> ExitCodes:
    """Execute the parsed command; returns the exit code."""
    if service is None:
        service = ProjectService(Settings.from_args(args))
    command = args.COMMAND

    if command in ("install", "update"):
        if command == "install":
            result = service.install()
        else:
            result = service.update(getattr(args, "PACKAGES", None) or None)
        print(f"Locked {len(result.lock)} package(s): {result.diff.summary()}")
        for build in result.builds:
            print(f"  native build required: {build.name} {build.version} ({build.build_type})")
        return ExitCodes.SUCCESS

    if command == "verify":
        report = service.verify()
        if report.ok:
            print(f"All {report.checked} package(s) verified")
            return ExitCodes.SUCCESS
        for issue in report.issues:
            print(f"  {issue}")
        print(f"{len(report.issues)} problem(s) found in {report.checked} package(s)")
        return ExitCodes.INTEGRITY_ERROR

    if command == "tree":
        for line in service.tree():
            print(line)
        return ExitCodes.SUCCESS

    if command == "outdated":
        rows = service.outdated()
        if not rows:
            print("No dependencies to check")
            return ExitCodes.SUCCESS
        for row in rows:
            print(f"  {format_outdated(row)}")
        counts = {status: 0 for status in OutdatedStatus}
        for row in rows:
            counts[row.status] += 1
        print(f"{counts[OutdatedStatus.UP_TO_DATE]} up to date, "
              f"{counts[OutdatedStatus.OUTDATED]} outdated, "
              f"{counts[OutdatedStatus.NOT_INSTALLED]} not installed, "
              f"{counts[OutdatedStatus.NOT_FOUND]} not found")
        if counts[OutdatedStatus.OUTDATED]:
            print("Run 'rocklock update' to update outdated packages")
        return ExitCodes.SUCCESS

    raise ConfigError(f"unknown command: {command}")


def main(argv=None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(getattr(args, "LOG_LEVEL", None), getattr(args, "LOG_FILE", None))
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )
    try:
        code = run(args)
    except (RocklockError, OSError) as exc:
        logger.error("%s", exc)
        code = exit_code_for(exc)
    except KeyboardInterrupt:
        logger.error("Interrupted")
        code = ExitCodes.FILE_ERROR
    sys.exit(code.value)


if __name__ == "__main__":
    main()
