"""Dependency manifests.

This module provides:
- Pydantic schemas for manifest validation
- Loading manifests from YAML
- Resolving manifest entries into orchestrator inputs
"""

from depbuild.manifest.io import load_manifest, resolve_manifest
from depbuild.manifest.schema import (
    DependencySchema,
    ManifestSchema,
    ResolvedDependency,
)

__all__ = [
    "DependencySchema",
    "ManifestSchema",
    "ResolvedDependency",
    "load_manifest",
    "resolve_manifest",
]
