"""Tests for pdfforge.config and pdfforge.logging_config."""

import io
import json
import logging
import sys
from pathlib import Path

import pytest

from pdfforge import config
from pdfforge.config import Settings, get_settings, reload_settings
from pdfforge.logging_config import StructuredFormatter, setup_logging
from pdfforge.types import GHOSTSCRIPT_CANDIDATES


class TestSettings:
    """Tests for Settings.from_env and the global accessors."""

    def test_defaults(self):
        """Defaults apply with no environment."""
        settings = Settings.from_env()
        assert settings.grace_delay == 30.0
        assert settings.split_grace_delay == 5.0
        assert settings.retention == 3600.0
        assert settings.sweep_interval == 3600.0
        assert settings.ghostscript_candidates == GHOSTSCRIPT_CANDIDATES
        assert settings.default_compression_level == "medium"
        assert settings.production is False
        assert settings.staging_dir.name == "pdfforge_staging"

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        """PDFFORGE_* variables override defaults."""
        monkeypatch.setenv("PDFFORGE_STAGING_DIR", str(tmp_path / "stage"))
        monkeypatch.setenv("PDFFORGE_GRACE_DELAY_SECONDS", "12.5")
        monkeypatch.setenv("PDFFORGE_SPLIT_GRACE_DELAY_SECONDS", "1")
        monkeypatch.setenv("PDFFORGE_RETENTION_SECONDS", "600")
        monkeypatch.setenv("PDFFORGE_GHOSTSCRIPT_CANDIDATES", " gs , gs-custom ,")
        monkeypatch.setenv("PDFFORGE_DEFAULT_COMPRESSION_LEVEL", "HIGH")
        monkeypatch.setenv("PDFFORGE_ENV", "production")
        monkeypatch.setenv("PDFFORGE_LOG_LEVEL", "debug")
        monkeypatch.setenv("PDFFORGE_LOG_JSON", "true")

        settings = Settings.from_env()
        assert settings.staging_dir == tmp_path / "stage"
        assert settings.grace_delay == 12.5
        assert settings.split_grace_delay == 1.0
        assert settings.retention == 600.0
        assert settings.ghostscript_candidates == ("gs", "gs-custom")
        assert settings.default_compression_level == "high"
        assert settings.production is True
        assert settings.log_level == "DEBUG"
        assert settings.log_json is True

    @pytest.mark.parametrize("raw", ["soon", "-5"])
    def test_bad_numbers_fall_back(self, monkeypatch: pytest.MonkeyPatch, raw: str):
        """Unusable numbers keep the default."""
        monkeypatch.setenv("PDFFORGE_GRACE_DELAY_SECONDS", raw)
        assert Settings.from_env().grace_delay == 30.0

    def test_to_dict(self, tmp_path: Path):
        """to_dict is JSON serializable."""
        data = Settings(staging_dir=tmp_path).to_dict()
        assert json.loads(json.dumps(data))["staging_dir"] == str(tmp_path)
        assert data["ghostscript_candidates"] == list(GHOSTSCRIPT_CANDIDATES)

    def test_get_settings_cached(self):
        """get_settings returns the same instance until reloaded."""
        first = get_settings()
        assert get_settings() is first
        assert reload_settings() is not first

    def test_reload_reads_environment(self, monkeypatch: pytest.MonkeyPatch):
        """reload_settings picks up environment changes."""
        get_settings()
        monkeypatch.setenv("PDFFORGE_RETENTION_SECONDS", "42")
        assert get_settings().retention == 3600.0
        assert reload_settings().retention == 42.0
        assert config._settings is not None


class TestLogging:
    """Tests for setup_logging and StructuredFormatter."""

    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_plain_format(self):
        """Plain text output carries level and message."""
        stream = io.StringIO()
        setup_logging("INFO", json_format=False, stream=stream)
        logging.getLogger("pdfforge.test").info("Merged %d PDF(s)", 3)
        line = stream.getvalue()
        assert "INFO" in line
        assert "Merged 3 PDF(s)" in line

    def test_json_format_with_extras(self):
        """JSON output is one object per line with extra fields."""
        stream = io.StringIO()
        setup_logging("DEBUG", json_format=True, stream=stream)
        logging.getLogger("pdfforge.test").debug(
            "compress finished", extra={"operation": "compress", "duration_ms": 12}
        )
        record = json.loads(stream.getvalue().strip())
        assert record["level"] == "DEBUG"
        assert record["message"] == "compress finished"
        assert record["operation"] == "compress"
        assert record["duration_ms"] == 12
        assert record["timestamp"].endswith("Z")

    def test_level_filtering(self):
        """Records below the configured level are dropped."""
        stream = io.StringIO()
        setup_logging("WARNING", stream=stream)
        logging.getLogger("pdfforge.test").info("hidden")
        assert stream.getvalue() == ""

    def test_unknown_level_means_info(self):
        """Unknown level names fall back to INFO."""
        setup_logging("chatty", stream=io.StringIO())
        assert logging.getLogger().level == logging.INFO

    def test_exception_serialized(self):
        """Exceptions are included in JSON output."""
        formatter = StructuredFormatter()
        try:
            raise ValueError("bad page")
        except ValueError:
            record = logging.getLogger("pdfforge.test").makeRecord(
                "pdfforge.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        data = json.loads(formatter.format(record))
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad page"
