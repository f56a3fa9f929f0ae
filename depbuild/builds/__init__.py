"""Dependency build module.

This module handles:
- Source checkout
- Config patching
- Running the external build
- Installing the produced artifact
- Cache key derivation
- Orchestrating the cache-or-build sequence
"""

from depbuild.builds.orchestrator import DependencyBuildOrchestrator, EnsureResult

__all__ = ["DependencyBuildOrchestrator", "EnsureResult"]

# Submodules are imported on demand
# Access via depbuild.builds.patching, depbuild.builds.runner, etc.
