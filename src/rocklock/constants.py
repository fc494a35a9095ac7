"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3
    INTEGRITY_ERROR = 4
    LOCKED = 5


class NativeBuildTypes(Enum):
    """Rockspec build types that compile native code."""

    RUST = "rust"
    CMAKE = "cmake"
    MAKE = "make"
    COMMAND = "command"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration defaults; not intended to provide behavior.
    """

    INDEX_URL = "https://luarocks.org/"
    MANIFEST_FILE = "package.yaml"
    LOCKFILE_FILE = "package.lock"
    LOCKFILE_SCHEMA_VERSION = 1
    CONFIG_FILE = "~/.config/rocklock/config.yaml"
    CACHE_DIR = "~/.cache/rocklock"
    ENV_PREFIX = "ROCKLOCK_"
    LOG_FORMAT = "[%(levelname)s] %(message)s"

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    INDEX_CACHE_TTL_SEC = 600

    FETCH_MAX_CONCURRENCY = 10
    FETCH_MAX_RETRIES = 3
    FETCH_BACKOFF_BASE_SEC = 0.5
    FETCH_BACKOFF_MAX_SEC = 8.0
    FETCH_CHUNK_SIZE = 64 * 1024

    # Upper bound on how often a single package may be re-selected while
    # new constraints keep arriving during one resolution.
    RESOLVER_MAX_RESELECTIONS = 32

    LOCK_WAIT_TIMEOUT_SEC = 0.0
    LOCK_POLL_INTERVAL_SEC = 0.1

    CHECKSUM_ALGORITHM = "sha256"
    USER_AGENT = "rocklock/0.1"
