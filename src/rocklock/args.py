"""Argument parsing for rocklock."""

import argparse

from . import __version__


def build_parser():
    """Build the top-level parser with one sub-command per operation."""
    parser = argparse.ArgumentParser(
        prog="rocklock",
        description="rocklock - reproducible, checksum-verified Lua dependency locking",
        add_help=True,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-C", "--project",
                        dest="PROJECT_DIR",
                        help="Project directory containing package.yaml (default: current directory)",
                        action="store",
                        type=str)
    common.add_argument("-i", "--index",
                        dest="INDEX",
                        help="Package index URL or path to an index snapshot file",
                        action="store",
                        type=str)
    common.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    common.add_argument("-j", "--concurrency",
                        dest="CONCURRENCY",
                        help="Maximum concurrent downloads",
                        action="store",
                        type=int)
    common.add_argument("--no-dev",
                        dest="NO_DEV",
                        help="Ignore dev_dependencies",
                        action="store_true")
    common.add_argument("--prefer-binaries",
                        dest="PREFER_BINARIES",
                        help="Download pre-built binaries for the current platform when available",
                        action="store_true")
    common.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    common.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    sub = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    sub.required = True
    sub.add_parser("install", parents=[common],
                   help="Resolve the manifest, fetch new archives and write package.lock")
    update = sub.add_parser("update", parents=[common],
                            help="Move packages to the highest versions the manifest allows")
    update.add_argument("PACKAGES", nargs="*", metavar="NAME",
                        help="Packages to update (default: all)")
    sub.add_parser("verify", parents=[common],
                   help="Check package.lock against the manifest and cached archives")
    sub.add_parser("tree", parents=[common], help="Print the locked dependency tree")
    sub.add_parser("outdated", parents=[common],
                   help="List direct dependencies with newer versions the manifest allows")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
