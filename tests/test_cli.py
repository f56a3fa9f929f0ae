"""Tests for the CLI.

These tests run without network access or external tools: checkouts are
mocked and builds run the current Python interpreter.
"""

import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from depbuild import __version__
from depbuild.cache import LocalDirectoryCache
from depbuild.cli import app
from depbuild.errors import CheckoutError

runner = CliRunner()

CHECKOUT = "depbuild.builds.orchestrator.checkout_source"

BUILD_SCRIPT = (
    "import pathlib; out = pathlib.Path('target/release'); "
    "out.mkdir(parents=True, exist_ok=True); (out / 'neard').write_text('built')"
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every configurable directory into tmp_path."""
    monkeypatch.setenv("DEPBUILD_WORK_DIR", str(tmp_path / "work"))
    monkeypatch.setenv("DEPBUILD_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("DEPBUILD_LOCK_DIR", str(tmp_path / "locks"))
    monkeypatch.setenv("DEPBUILD_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("DEPBUILD_CACHE_BACKEND", "local")
    monkeypatch.setenv("DEPBUILD_LOG_LEVEL", "CRITICAL")
    monkeypatch.delenv("DEPBUILD_USE_CACHE", raising=False)


@pytest.fixture
def manifest(tmp_path) -> Path:
    """Write a manifest with one Python-built dependency."""
    data = {
        "dependencies": [
            {
                "name": "nearcore",
                "artifact": "bin/neard",
                "cache_key": "nearcore-test",
                "source": {
                    "repository": "https://github.com/near/nearcore.git",
                    "revision": "1.26.0",
                },
                "build": {"command": [sys.executable, "-c", BUILD_SCRIPT]},
                "install": {"output": "target/release/neard"},
            }
        ]
    }
    path = tmp_path / "deps.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def fake_checkout(source, git="git"):
    """Stand in for git."""
    source.checkout_path.mkdir(parents=True, exist_ok=True)


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "depbuild" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self) -> None:
        """CLI config should show configuration."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Paths:" in result.stdout
        assert "Cache:" in result.stdout
        assert "Backend" in result.stdout

    def test_config_json(self, tmp_path) -> None:
        """CLI config --json should output JSON."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["cache_backend"] == "local"
        assert data["work_dir"] == str(tmp_path / "work")


class TestCLIEnsure:
    """Test CLI ensure command."""

    def test_build_without_cache(self, manifest, tmp_path) -> None:
        """Should build the artifact and exit 0."""
        with patch(CHECKOUT, side_effect=fake_checkout) as mock_checkout:
            result = runner.invoke(app, ["ensure", str(manifest), "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["results"][0]["outcome"] == "built"
        assert data["results"][0]["cache_saved"] is False
        assert (tmp_path / "bin" / "neard").read_text() == "built"
        mock_checkout.assert_called_once()
        assert not (tmp_path / "cache").exists()

    def test_already_present(self, manifest, tmp_path) -> None:
        """Should not check out anything when the artifact exists."""
        (tmp_path / "bin").mkdir()
        (tmp_path / "bin" / "neard").write_text("existing")

        with patch(CHECKOUT) as mock_checkout:
            result = runner.invoke(app, ["ensure", str(manifest)])

        assert result.exit_code == 0
        assert "nearcore" in result.stdout
        mock_checkout.assert_not_called()

    def test_cache_hit(self, manifest, tmp_path) -> None:
        """Should restore from the local cache without building."""
        cached = tmp_path / "seed"
        cached.write_text("from cache")
        LocalDirectoryCache(tmp_path / "cache").save("nearcore-test", cached)

        with patch(CHECKOUT) as mock_checkout:
            result = runner.invoke(
                app, ["ensure", str(manifest), "--cache", "--json"]
            )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["results"][0]["outcome"] == "restored"
        assert (tmp_path / "bin" / "neard").read_text() == "from cache"
        mock_checkout.assert_not_called()

    def test_cache_miss_populates_cache(self, manifest, tmp_path) -> None:
        """Should build then save to the cache."""
        with patch(CHECKOUT, side_effect=fake_checkout):
            result = runner.invoke(
                app, ["ensure", str(manifest), "--cache", "--json"]
            )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["results"][0]["cache_saved"] is True
        entry = LocalDirectoryCache(tmp_path / "cache").entry_path("nearcore-test")
        assert entry.read_text() == "built"

    def test_use_cache_from_env(self, manifest, tmp_path, monkeypatch) -> None:
        """DEPBUILD_USE_CACHE should enable caching by default."""
        monkeypatch.setenv("DEPBUILD_USE_CACHE", "true")
        with patch(CHECKOUT, side_effect=fake_checkout):
            result = runner.invoke(app, ["ensure", str(manifest)])

        assert result.exit_code == 0, result.output
        entry = LocalDirectoryCache(tmp_path / "cache").entry_path("nearcore-test")
        assert entry.exists()

    def test_http_backend_is_closed(self, manifest, tmp_path, monkeypatch) -> None:
        """The HTTP cache client should be closed after the run."""
        monkeypatch.setenv("DEPBUILD_CACHE_BACKEND", "http")
        monkeypatch.setenv("DEPBUILD_CACHE_URL", "https://cache.example.com")
        (tmp_path / "bin").mkdir()
        (tmp_path / "bin" / "neard").write_text("existing")

        with patch("depbuild.cache.http.HttpCacheBackend.close") as mock_close:
            result = runner.invoke(app, ["ensure", str(manifest), "--cache"])

        assert result.exit_code == 0, result.output
        mock_close.assert_called_once()

    def test_http_backend_closed_on_failure(self, manifest, monkeypatch) -> None:
        """The HTTP cache client is closed even when a build fails."""
        monkeypatch.setenv("DEPBUILD_CACHE_BACKEND", "http")
        monkeypatch.setenv("DEPBUILD_CACHE_URL", "https://cache.example.com")

        with (
            patch("depbuild.cache.http.HttpCacheBackend.restore", return_value=False),
            patch(CHECKOUT, side_effect=CheckoutError("unreachable")),
            patch("depbuild.cache.http.HttpCacheBackend.close") as mock_close,
        ):
            result = runner.invoke(app, ["ensure", str(manifest), "--cache"])

        assert result.exit_code == 1
        mock_close.assert_called_once()

    def test_checkout_failure_exits_nonzero(self, manifest) -> None:
        """A build-path error should exit 1 with the error code."""
        with patch(CHECKOUT, side_effect=CheckoutError("unreachable")):
            result = runner.invoke(app, ["ensure", str(manifest), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert data["results"][0]["error"]["code"] == "checkout_error"

    def test_build_failure_reports_log(self, tmp_path) -> None:
        """A failed build should surface the log path."""
        path = tmp_path / "deps.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "dependencies": [
                        {
                            "name": "broken",
                            "artifact": "bin/broken",
                            "source": {
                                "repository": "https://example.com/x.git",
                                "revision": "v1",
                            },
                            "build": {
                                "command": [sys.executable, "-c", "raise SystemExit(3)"]
                            },
                            "install": {"output": "out"},
                        }
                    ]
                }
            )
        )

        with patch(CHECKOUT, side_effect=fake_checkout):
            result = runner.invoke(app, ["ensure", str(path), "--json"])

        assert result.exit_code == 1
        error = json.loads(result.stdout)["results"][0]["error"]
        assert error["code"] == "build_failed"
        assert error["log_path"].startswith(str(tmp_path / "logs"))

    def test_missing_manifest(self, tmp_path) -> None:
        """A missing manifest should exit 1."""
        result = runner.invoke(app, ["ensure", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1

    def test_only_unknown(self, manifest) -> None:
        """Selecting an unknown dependency should exit 1."""
        result = runner.invoke(app, ["ensure", str(manifest), "--only", "nope"])
        assert result.exit_code == 1


class TestCLIStatus:
    """Test CLI status and cache-key commands."""

    def test_status_json(self, manifest, tmp_path) -> None:
        """Should report presence per dependency."""
        result = runner.invoke(app, ["status", str(manifest), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data[0]["name"] == "nearcore"
        assert data[0]["present"] is False

        (tmp_path / "bin").mkdir()
        (tmp_path / "bin" / "neard").write_text("x")
        result = runner.invoke(app, ["status", str(manifest), "--json"])
        data = json.loads(result.stdout)
        assert data[0]["present"] is True

    def test_status_human(self, manifest) -> None:
        """Should print a line per dependency."""
        result = runner.invoke(app, ["status", str(manifest)])
        assert result.exit_code == 0
        assert "missing" in result.stdout

    def test_cache_key(self, manifest) -> None:
        """Should print name and key."""
        result = runner.invoke(app, ["cache-key", str(manifest)])
        assert result.exit_code == 0
        assert result.stdout.strip() == "nearcore\tnearcore-test"


class TestCLIPatch:
    """Test CLI patch command."""

    def test_patch(self, tmp_path) -> None:
        """Should patch matching files."""
        config = tmp_path / "res" / "1.json"
        config.parent.mkdir()
        config.write_text('{\n  "max_gas_burnt": 1,\n  "x": 2\n}\n')

        result = runner.invoke(
            app,
            [
                "patch",
                str(tmp_path),
                "--files",
                "res/*.json",
                "--key",
                "max_gas_burnt",
                "--value",
                "2000000000000000",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Replaced 1 line(s) in 1 file(s)" in result.stdout
        assert '"max_gas_burnt": 2000000000000000,' in config.read_text()

    def test_patch_string_value(self, tmp_path) -> None:
        """Non-JSON values are patched in as strings."""
        config = tmp_path / "c.json"
        config.write_text('  "mode": "a",\n')

        result = runner.invoke(
            app,
            ["patch", str(tmp_path), "-f", "c.json", "-k", "mode", "--value", "fast"],
        )

        assert result.exit_code == 0
        assert config.read_text() == '  "mode": "fast",\n'

    def test_patch_required_missing(self, tmp_path) -> None:
        """--required should exit 1 when the key is absent."""
        (tmp_path / "c.json").write_text("{}\n")
        result = runner.invoke(
            app,
            [
                "patch",
                str(tmp_path),
                "-f",
                "c.json",
                "-k",
                "k",
                "--value",
                "1",
                "--required",
            ],
        )
        assert result.exit_code == 1
