"""Thin CLI wrapper for depbuild.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from depbuild import __version__
from depbuild.config import Settings, get_settings, print_settings_json
from depbuild.errors import DepBuildError

if TYPE_CHECKING:
    from depbuild.builds.orchestrator import DependencyBuildOrchestrator
    from depbuild.manifest import ResolvedDependency

app = typer.Typer(
    name="depbuild",
    help="depbuild - restore or build external dependency binaries",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def setup_logging(level: str) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"depbuild version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """depbuild - restore or build external dependency binaries."""
    setup_logging("DEBUG" if verbose else get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Work directory:      {settings.work_dir}")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print(f"  Lock directory:      {settings.lock_dir}")
        console.print(f"  Log directory:       {settings.log_dir}")
        console.print()
        console.print("[bold]Cache:[/bold]")
        console.print(f"  Enabled:             {settings.use_cache}")
        console.print(f"  Backend:             {settings.cache_backend}")
        console.print(f"  cache-util path:     {settings.cache_util_path}")
        console.print(f"  Cache URL:           {settings.cache_url or '(not set)'}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Git executable:      {settings.git_path}")
        console.print(f"  Log level:           {settings.log_level}")
        lock_timeout = settings.lock_timeout or "(blocking)"
        console.print(f"  Lock timeout:        {lock_timeout}")


def _resolve_or_exit(
    manifest: Path, settings: Settings, only: list[str] | None
) -> "list[ResolvedDependency]":
    from depbuild.manifest import resolve_manifest

    try:
        return resolve_manifest(manifest, settings.work_dir, only)
    except DepBuildError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None


def _ensure_all(
    orchestrator: "DependencyBuildOrchestrator",
    deps: "list[ResolvedDependency]",
    settings: Settings,
    use_cache: bool,
    json_output: bool,
) -> tuple[list[dict[str, Any]], bool]:
    from depbuild.builds.orchestrator import artifact_lock

    results: list[dict[str, Any]] = []

    for dep in deps:
        entry: dict[str, Any] = {
            "name": dep.name,
            "artifact": str(dep.target.artifact_path),
            "cache_key": dep.target.cache_key,
        }
        try:
            with artifact_lock(
                settings.lock_dir,
                dep.target.cache_key,
                timeout=settings.lock_timeout,
            ):
                result = orchestrator.ensure_artifact(
                    target=dep.target,
                    source=dep.source,
                    patches=dep.patches,
                    build_command=dep.build_command,
                    install_step=dep.install_step,
                    cache_enabled=use_cache,
                )
        except (DepBuildError, TimeoutError) as e:
            entry["success"] = False
            entry["error"] = {
                "code": getattr(e, "code", "lock_timeout"),
                "message": str(e),
            }
            output = getattr(e, "output", "")
            log_path = getattr(e, "log_path", None)
            if log_path is not None:
                entry["error"]["log_path"] = str(log_path)
            results.append(entry)
            if not json_output:
                console.print(f"  [red]✗ {dep.name}[/red]: {escape(str(e))}")
                if output:
                    err_console.print(output, markup=False, highlight=False)
                if log_path is not None:
                    console.print(f"      Log: {log_path}")
            return results, True

        entry["success"] = True
        entry["outcome"] = result.outcome.value
        entry["cache_saved"] = result.cache_saved
        entry["states"] = [s.value for s in result.states]
        results.append(entry)
        if not json_output:
            marker = f" ({result.outcome.value.replace('_', ' ')})"
            console.print(f"  [green]✓ {dep.name}{marker}[/green]")
            console.print(f"      {dep.target.artifact_path}")

    return results, False


@app.command()
def ensure(
    manifest: Annotated[Path, typer.Argument(help="Dependency manifest (YAML)")],
    only: Annotated[
        list[str] | None,
        typer.Option("--only", "-o", help="Dependency name(s) to ensure"),
    ] = None,
    cache: Annotated[
        bool | None,
        typer.Option(
            "--cache/--no-cache",
            help="Restore from and save to the cache (default: DEPBUILD_USE_CACHE)",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Ensure every dependency artifact in a manifest exists.

    Each artifact is reused if present, restored from the cache if enabled,
    or checked out, patched, built and installed. Stops at the first failure.
    """
    from depbuild.builds.orchestrator import DependencyBuildOrchestrator
    from depbuild.cache import create_cache_backend

    settings = get_settings()
    use_cache = settings.use_cache if cache is None else cache
    deps = _resolve_or_exit(manifest, settings, only)

    try:
        backend = create_cache_backend(settings) if use_cache else None
    except ValueError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    orchestrator = DependencyBuildOrchestrator(
        cache=backend,
        git=settings.git_path,
        log_dir=settings.log_dir,
    )

    try:
        results, failed = _ensure_all(
            orchestrator, deps, settings, use_cache, json_output
        )
    finally:
        close = getattr(backend, "close", None)
        if close is not None:
            close()

    if json_output:
        typer.echo(json.dumps({"success": not failed, "results": results}, indent=2))

    if failed:
        raise typer.Exit(code=1)


@app.command()
def status(
    manifest: Annotated[Path, typer.Argument(help="Dependency manifest (YAML)")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show whether each dependency artifact is present."""
    settings = get_settings()
    deps = _resolve_or_exit(manifest, settings, None)

    if json_output:
        output = [
            {
                "name": d.name,
                "artifact": str(d.target.artifact_path),
                "present": d.target.present,
                "cache_key": d.target.cache_key,
                "revision": d.source.revision,
            }
            for d in deps
        ]
        typer.echo(json.dumps(output, indent=2))
        return

    if not deps:
        console.print("[yellow]No dependencies in manifest[/yellow]")
        return

    for d in deps:
        state = "[green]present[/green]" if d.target.present else "[red]missing[/red]"
        console.print(f"  [bold]{d.name}[/bold] @ {d.source.revision}: {state}")
        console.print(f"    Artifact:  {d.target.artifact_path}")
        console.print(f"    Cache key: {d.target.cache_key}")


@app.command("cache-key")
def cache_key(
    manifest: Annotated[Path, typer.Argument(help="Dependency manifest (YAML)")],
    only: Annotated[
        list[str] | None,
        typer.Option("--only", "-o", help="Dependency name(s)"),
    ] = None,
) -> None:
    """Print the cache key of each dependency, one per line."""
    settings = get_settings()
    for d in _resolve_or_exit(manifest, settings, only):
        typer.echo(f"{d.name}\t{d.target.cache_key}")


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@app.command()
def patch(
    root: Annotated[Path, typer.Argument(help="Directory the glob is relative to")],
    files: Annotated[str, typer.Option("--files", "-f", help="Glob of files")],
    key: Annotated[str, typer.Option("--key", "-k", help="Key to replace")],
    value: Annotated[
        str,
        typer.Option("--value", help="New value (JSON literal, else a string)"),
    ],
    required: Annotated[
        bool,
        typer.Option("--required", help="Fail if the key is not found"),
    ] = False,
) -> None:
    """Replace the line holding KEY in every file matching the glob."""
    from depbuild.builds.patching import apply_patches
    from depbuild.types import ConfigPatch

    config_patch = ConfigPatch(
        file_pattern=files, key=key, new_value=_parse_value(value), required=required
    )
    try:
        (result,) = apply_patches(root, [config_patch])
    except DepBuildError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    console.print(
        f"Replaced {result.total_replaced} line(s) in {len(result.files)} file(s)"
    )


if __name__ == "__main__":
    app()
