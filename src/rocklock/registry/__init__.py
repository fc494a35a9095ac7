"""Package index collaborators."""

from .client import HttpIndexClient, SnapshotIndexClient, build_index_client
from .models import BinaryArtifact, IndexClient, VersionMetadata, default_target, is_runtime_dependency

__all__ = [
    "BinaryArtifact",
    "HttpIndexClient",
    "IndexClient",
    "SnapshotIndexClient",
    "VersionMetadata",
    "build_index_client",
    "default_target",
    "is_runtime_dependency",
]
