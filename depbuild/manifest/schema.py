"""Pydantic models for dependency manifest validation.

A manifest lists the external dependencies a workspace needs::

    dependencies:
      - name: nearcore
        artifact: bin/neard
        source:
          repository: https://github.com/near/nearcore.git
          revision: 1.26.0
        patches:
          - files: core/primitives/res/runtime_configs/*.json
            key: max_gas_burnt
            value: 2000000000000000
        build:
          command: [cargo, build, --package, neard, --release]
        install:
          output: target/release/neard
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from depbuild.builds.cache_key import derive_cache_key
from depbuild.builds.install import InstallStep
from depbuild.types import BuildCommand, BuildTarget, ConfigPatch, SourceRef

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")


class SourceSchema(BaseModel):
    """Schema for the source repository of a dependency.

    Attributes:
        repository: Clone URL.
        revision: Tag, branch or commit to build.
        checkout_path: Optional checkout directory (default: <work_dir>/<name>).
    """

    model_config = ConfigDict(extra="forbid")

    repository: str = Field(description="Repository clone URL")
    revision: str = Field(description="Tag, branch or commit")
    checkout_path: str | None = Field(default=None)


class PatchSchema(BaseModel):
    """Schema for a config patch.

    Attributes:
        files: Glob relative to the checkout root.
        key: Key whose line is replaced.
        value: New literal value.
        required: Fail if the key is not found.
    """

    model_config = ConfigDict(extra="forbid")

    files: str = Field(description="Glob of files to patch")
    key: str = Field(min_length=1)
    value: Any
    required: bool = False

    @field_validator("files")
    @classmethod
    def validate_files(cls, v: str) -> str:
        """Validate the glob stays inside the checkout."""
        if v.startswith("/") or ".." in Path(v).parts:
            raise ValueError("files must be a relative glob inside the checkout")
        return v

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Validate the key can be matched as a quoted token."""
        if '"' in v or "\n" in v:
            raise ValueError("key must not contain quotes or newlines")
        return v


class BuildSchema(BaseModel):
    """Schema for the build invocation."""

    model_config = ConfigDict(extra="forbid")

    command: list[str] = Field(min_length=1)
    env: dict[str, str] = Field(default_factory=dict)
    timeout: int | None = Field(default=None, ge=1)


class InstallSchema(BaseModel):
    """Schema for the install step."""

    model_config = ConfigDict(extra="forbid")

    output: str = Field(description="Build output relative to the checkout root")
    mode: str | None = Field(default=None)

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str | None) -> str | None:
        """Validate mode is a valid octal string."""
        if v is None:
            return v
        if not re.match(r"^0?[0-7]{3,4}$", v):
            raise ValueError(
                f"mode must be a valid octal string (e.g., '0755'), got '{v}'"
            )
        return v


class DependencySchema(BaseModel):
    """One external dependency.

    Attributes:
        name: Unique dependency name.
        artifact: Path the built binary must end up at.
        cache_key: Optional explicit cache key (derived when omitted).
        source: Source repository.
        patches: Config patches, applied in order.
        build: Build invocation.
        install: Install step.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    artifact: str
    cache_key: str | None = None
    source: SourceSchema
    patches: list[PatchSchema] = Field(default_factory=list)
    build: BuildSchema
    install: InstallSchema

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name format."""
        if not NAME_PATTERN.match(v):
            raise ValueError(
                "name must contain only letters, digits, '_', '.', or '-'"
            )
        return v

    @field_validator("cache_key")
    @classmethod
    def validate_cache_key(cls, v: str | None) -> str | None:
        """Validate the key composes with the key:path cache syntax."""
        if v is not None and (not v or ":" in v):
            raise ValueError("cache_key must be non-empty and must not contain ':'")
        return v


class ManifestSchema(BaseModel):
    """A manifest of dependencies."""

    model_config = ConfigDict(extra="forbid")

    dependencies: list[DependencySchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self) -> "ManifestSchema":
        """Validate dependency names are unique."""
        seen: set[str] = set()
        for dep in self.dependencies:
            if dep.name in seen:
                raise ValueError(f"duplicate dependency name: {dep.name}")
            seen.add(dep.name)
        return self


@dataclass(frozen=True)
class ResolvedDependency:
    """A dependency with paths resolved and runtime objects built."""

    name: str
    target: BuildTarget
    source: SourceRef
    patches: tuple[ConfigPatch, ...]
    build_command: BuildCommand
    install_step: InstallStep


def resolve_dependency(
    dep: DependencySchema,
    base_path: Path,
    work_dir: Path,
) -> ResolvedDependency:
    """Resolve a validated dependency into runtime objects.

    Args:
        dep: Validated dependency.
        base_path: Directory relative paths are resolved against.
        work_dir: Default parent directory for checkouts.

    Returns:
        ResolvedDependency ready for the orchestrator.
    """
    if dep.source.checkout_path:
        checkout_path = base_path / dep.source.checkout_path
    else:
        checkout_path = work_dir / dep.name

    source = SourceRef(
        repository_url=dep.source.repository,
        checkout_path=checkout_path,
        revision=dep.source.revision,
    )
    patches = tuple(
        ConfigPatch(
            file_pattern=p.files,
            key=p.key,
            new_value=p.value,
            required=p.required,
        )
        for p in dep.patches
    )
    build_command = BuildCommand(
        argv=tuple(dep.build.command),
        env=dict(dep.build.env),
        timeout=dep.build.timeout,
    )
    install_step = InstallStep(output=dep.install.output, mode=dep.install.mode)

    cache_key = dep.cache_key or derive_cache_key(
        dep.name, source, patches, build_command, install_step
    )

    return ResolvedDependency(
        name=dep.name,
        target=BuildTarget(artifact_path=base_path / dep.artifact, cache_key=cache_key),
        source=source,
        patches=patches,
        build_command=build_command,
        install_step=install_step,
    )


__all__ = [
    "BuildSchema",
    "DependencySchema",
    "InstallSchema",
    "ManifestSchema",
    "PatchSchema",
    "ResolvedDependency",
    "SourceSchema",
    "resolve_dependency",
]
