"""Project manifest (``package.yaml``): the human-edited source of intent.

rocklock only ever reads the manifest.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from .constants import Constants
from .errors import ManifestError

logger = logging.getLogger(__name__)


@dataclass
class Manifest:
    """Declared direct dependencies and their constraint strings."""

    name: str
    version: str = "0.0.0"
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Manifest":
        if not isinstance(data, Mapping):
            raise ManifestError("manifest must be a mapping")
        manifest = cls(
            name=str(data.get("name") or ""),
            version=str(data.get("version") or "0.0.0"),
            dependencies=_string_map(data.get("dependencies"), "dependencies"),
            dev_dependencies=_string_map(data.get("dev_dependencies"), "dev_dependencies"),
        )
        manifest.validate()
        return manifest

    @classmethod
    def load(cls, project_dir: str) -> "Manifest":
        """Load ``package.yaml`` from ``project_dir``."""
        path = os.path.join(project_dir, Constants.MANIFEST_FILE)
        if not os.path.isfile(path):
            raise ManifestError(f"{Constants.MANIFEST_FILE} not found in {project_dir}")
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ManifestError(f"failed to parse {path}: {exc}") from exc
        except OSError as exc:
            raise ManifestError(f"failed to read {path}: {exc}") from exc
        logger.debug("Loaded manifest from %s", path)
        return cls.from_dict(data)

    def validate(self) -> None:
        if not self.name:
            raise ManifestError("package name cannot be empty")
        for section, deps in (("dependency", self.dependencies),
                              ("dev dependency", self.dev_dependencies)):
            for dep_name, constraint in deps.items():
                if not dep_name:
                    raise ManifestError(f"{section} name cannot be empty")
                if not constraint:
                    raise ManifestError(f"{section} '{dep_name}' version cannot be empty")

    def requirements(self, include_dev: bool = False) -> List[Tuple[str, str, str]]:
        """Direct (requirer label, name, constraint text) triples.

        Regular dependencies are attributed to ``"<name> (manifest)"`` and dev
        dependencies to ``"<name> (dev)"``, so a package listed in both
        sections carries both constraints.
        """
        triples = [
            (f"{self.name} (manifest)", dep, cons)
            for dep, cons in sorted(self.dependencies.items())
        ]
        if include_dev:
            triples.extend(
                (f"{self.name} (dev)", dep, cons)
                for dep, cons in sorted(self.dev_dependencies.items())
            )
        return triples


def _string_map(raw: Any, section: str) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ManifestError(f"'{section}' must be a mapping of name to constraint")
    # YAML reads a bare 1.0 as a float; constraints are always text.
    return {str(k): "" if v is None else str(v) for k, v in raw.items()}
