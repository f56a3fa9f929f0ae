"""Manifest loading.

This module provides helpers for loading dependency manifests from YAML
files and resolving them into orchestrator inputs.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from depbuild.errors import ManifestError
from depbuild.manifest.schema import (
    ManifestSchema,
    ResolvedDependency,
    resolve_dependency,
)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def parse_manifest_data(data: dict[str, Any]) -> ManifestSchema:
    """Parse and validate manifest data using the schema.

    Raises:
        pydantic.ValidationError: If data does not match schema.
    """
    return ManifestSchema.model_validate(data)


def load_manifest(path: Path) -> ManifestSchema:
    """Load and validate a manifest from a YAML file.

    Args:
        path: Path to the manifest.

    Returns:
        Validated ManifestSchema.

    Raises:
        ManifestError: If the file is missing, unparsable or invalid.
    """
    try:
        return parse_manifest_data(load_yaml(path))
    except FileNotFoundError as e:
        raise ManifestError(
            f"Manifest not found: {path}", code="manifest_not_found"
        ) from e
    except yaml.YAMLError as e:
        raise ManifestError(
            f"Invalid YAML in {path}: {e}", code="manifest_parse_error"
        ) from e
    except ValidationError as e:
        raise ManifestError(
            f"Invalid manifest {path}:\n{e}", code="manifest_validation_error"
        ) from e
    except ValueError as e:
        raise ManifestError(
            f"Invalid manifest {path}: {e}", code="manifest_validation_error"
        ) from e


def resolve_manifest(
    path: Path,
    work_dir: Path,
    only: Sequence[str] | None = None,
) -> list[ResolvedDependency]:
    """Load a manifest and resolve its dependencies.

    Relative paths in the manifest are resolved against its directory.

    Args:
        path: Path to the manifest.
        work_dir: Default parent directory for checkouts.
        only: Restrict to these dependency names (manifest order is kept).

    Returns:
        Resolved dependencies.

    Raises:
        ManifestError: If loading fails or ``only`` names an unknown dependency.
    """
    manifest = load_manifest(path)
    base_path = path.resolve().parent

    deps = manifest.dependencies
    if only:
        known = {d.name for d in deps}
        unknown = sorted(set(only) - known)
        if unknown:
            raise ManifestError(
                f"Unknown dependencies: {', '.join(unknown)}",
                code="dependency_not_found",
            )
        deps = [d for d in deps if d.name in only]

    return [resolve_dependency(d, base_path, work_dir) for d in deps]


__all__ = [
    "load_manifest",
    "load_yaml",
    "parse_manifest_data",
    "resolve_manifest",
]
