"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from depbuild.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings()

        assert settings.work_dir == Path.home() / ".cache" / "depbuild" / "src"
        assert settings.cache_dir == Path.home() / ".cache" / "depbuild" / "artifacts"
        assert settings.use_cache is False
        assert settings.cache_backend == "cache-util"
        assert settings.cache_util_path == "cache-util"
        assert settings.cache_url is None
        assert settings.git_path == "git"
        assert settings.log_level == "INFO"
        assert settings.lock_timeout is None

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "DEPBUILD_USE_CACHE": "true",
                "DEPBUILD_CACHE_BACKEND": "local",
                "DEPBUILD_LOG_LEVEL": "DEBUG",
                "DEPBUILD_LOCK_TIMEOUT": "30",
            },
        ):
            settings = Settings()
            assert settings.use_cache is True
            assert settings.cache_backend == "local"
            assert settings.log_level == "DEBUG"
            assert settings.lock_timeout == 30

    def test_work_dir_from_env(self) -> None:
        """Work dir should be configurable via env."""
        with patch.dict(os.environ, {"DEPBUILD_WORK_DIR": "/tmp/depbuild-src"}):
            settings = Settings()
            assert settings.work_dir == Path("/tmp/depbuild-src")

    def test_invalid_backend_rejected(self) -> None:
        """Unknown cache backends should fail validation."""
        with (
            patch.dict(os.environ, {"DEPBUILD_CACHE_BACKEND": "s3"}),
            pytest.raises(ValidationError),
        ):
            Settings()


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        assert isinstance(get_settings(), Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings()))

        assert "work_dir" in parsed
        assert "cache_dir" in parsed
        assert "use_cache" in parsed
        assert "cache_backend" in parsed

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        parsed = json.loads(print_settings_json())
        assert "lock_dir" in parsed
