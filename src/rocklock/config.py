"""Runtime settings.

Precedence, lowest to highest: built-in defaults from :class:`Constants`, the
YAML config file, ``ROCKLOCK_*`` environment variables, CLI arguments.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import Constants
from .errors import ConfigError
from .registry.models import default_target

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class Settings:
    """Resolved configuration for one invocation."""

    project_dir: str = "."
    index: str = Constants.INDEX_URL
    cache_dir: str = Constants.CACHE_DIR
    max_concurrency: int = Constants.FETCH_MAX_CONCURRENCY
    max_retries: int = Constants.FETCH_MAX_RETRIES
    request_timeout: float = float(Constants.REQUEST_TIMEOUT)
    lock_wait_timeout: float = Constants.LOCK_WAIT_TIMEOUT_SEC
    include_dev: bool = True
    prefer_binaries: bool = False
    allow_unverified: bool = False
    target: str = ""
    log_level: Optional[str] = None
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.target:
            self.target = default_target()

    @property
    def lockfile_path(self) -> str:
        return os.path.join(self.project_dir, Constants.LOCKFILE_FILE)

    @property
    def resolved_cache_dir(self) -> str:
        return os.path.expanduser(self.cache_dir)

    def validate(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be at least 1, got {self.max_concurrency}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.lock_wait_timeout < 0:
            raise ConfigError(f"lock_wait_timeout cannot be negative, got {self.lock_wait_timeout}")
        if not self.index:
            raise ConfigError("index cannot be empty")

    def apply(self, values: Mapping[str, Any], source: str) -> None:
        """Overlay ``values`` (raw strings or YAML scalars) onto this instance."""
        known = {f.name: f for f in fields(self)}
        for key, raw in values.items():
            name = str(key).replace("-", "_")
            if name not in known:
                logger.warning("Ignoring unknown setting '%s' from %s", key, source)
                continue
            if raw is None:
                continue
            setattr(self, name, _coerce(name, known[name].default, raw, source))

    @classmethod
    def load(cls, config_path: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Defaults, then the YAML file, then the environment."""
        settings = cls()
        settings.apply(_load_config_file(config_path), config_path or Constants.CONFIG_FILE)
        settings.apply(_env_values(os.environ if environ is None else environ), "environment")
        settings.validate()
        return settings

    @classmethod
    def from_args(cls, args: Any, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Create settings from CLI arguments layered over file and environment."""
        settings = cls.load(getattr(args, "CONFIG", None), environ=environ)
        overrides: Dict[str, Any] = {
            "project_dir": getattr(args, "PROJECT_DIR", None),
            "index": getattr(args, "INDEX", None),
            "max_concurrency": getattr(args, "CONCURRENCY", None),
            "log_level": getattr(args, "LOG_LEVEL", None),
            "log_file": getattr(args, "LOG_FILE", None),
        }
        if getattr(args, "NO_DEV", False):
            overrides["include_dev"] = False
        if getattr(args, "PREFER_BINARIES", False):
            overrides["prefer_binaries"] = True
        settings.apply(overrides, "command line")
        settings.validate()
        return settings


def _coerce(name: str, default: Any, raw: Any, source: str) -> Any:
    try:
        if isinstance(default, bool):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"expected a boolean, got {raw!r}")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for '{name}' from {source}: {exc}") from exc
    return str(raw)


def _load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    explicit = config_path is not None
    path = os.path.expanduser(config_path or Constants.CONFIG_FILE)
    if not os.path.isfile(path):
        if explicit:
            raise ConfigError(f"config file not found: {path}")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    logger.debug("Loaded configuration from %s", path)
    return data


def _env_values(environ: Mapping[str, str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for f in fields(Settings):
        key = f"{Constants.ENV_PREFIX}{f.name.upper()}"
        if key in environ and environ[key] != "":
            values[f.name] = environ[key]
    return values
