"""
Configuration Management
========================

Environment configuration for pdfforge. Every setting has a default, so the
library and the CLI work with no environment at all.

Environment variables:
    PDFFORGE_STAGING_DIR               staging root (default: <tmp>/pdfforge_staging)
    PDFFORGE_GRACE_DELAY_SECONDS       delay before single outputs are deleted (30)
    PDFFORGE_SPLIT_GRACE_DELAY_SECONDS delay before split outputs are deleted (5)
    PDFFORGE_RETENTION_SECONDS         sweep age threshold (3600)
    PDFFORGE_SWEEP_INTERVAL_SECONDS    seconds between sweeps (3600)
    PDFFORGE_GHOSTSCRIPT_CANDIDATES    comma-separated executables (gswin64c,gswin32c,gs)
    PDFFORGE_DEFAULT_COMPRESSION_LEVEL low | medium | high (medium)
    PDFFORGE_ENV                       "production" hides internal error messages
    PDFFORGE_LOG_LEVEL                 logging level name (INFO)
    PDFFORGE_LOG_JSON                  "true" for JSON log lines
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pdfforge.types import (
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_GRACE_DELAY_SECONDS,
    DEFAULT_RETENTION_SECONDS,
    DEFAULT_SPLIT_GRACE_DELAY_SECONDS,
    DEFAULT_STAGING_DIR,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    GHOSTSCRIPT_CANDIDATES,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "PDFFORGE_"


def _default_staging_dir() -> Path:
    return Path(tempfile.gettempdir()) / DEFAULT_STAGING_DIR


def _env(name: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s%s=%r: not a number", ENV_PREFIX, name, raw)
        return default
    if value < 0:
        logger.warning("Ignoring %s%s=%r: must not be negative", ENV_PREFIX, name, raw)
        return default
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration"""

    # Staging and cleanup
    staging_dir: Path = field(default_factory=_default_staging_dir)
    grace_delay: float = DEFAULT_GRACE_DELAY_SECONDS
    split_grace_delay: float = DEFAULT_SPLIT_GRACE_DELAY_SECONDS
    retention: float = float(DEFAULT_RETENTION_SECONDS)
    sweep_interval: float = float(DEFAULT_SWEEP_INTERVAL_SECONDS)

    # Compression
    ghostscript_candidates: Tuple[str, ...] = GHOSTSCRIPT_CANDIDATES
    default_compression_level: str = DEFAULT_COMPRESSION_LEVEL

    # Environment
    production: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Load configuration from environment variables"""
        staging = _env("STAGING_DIR")
        candidates = tuple(name.strip() for name in _env("GHOSTSCRIPT_CANDIDATES").split(",") if name.strip())
        return cls(
            # Staging and cleanup
            staging_dir=Path(staging).expanduser() if staging else _default_staging_dir(),
            grace_delay=_env_float("GRACE_DELAY_SECONDS", DEFAULT_GRACE_DELAY_SECONDS),
            split_grace_delay=_env_float("SPLIT_GRACE_DELAY_SECONDS", DEFAULT_SPLIT_GRACE_DELAY_SECONDS),
            retention=_env_float("RETENTION_SECONDS", float(DEFAULT_RETENTION_SECONDS)),
            sweep_interval=_env_float("SWEEP_INTERVAL_SECONDS", float(DEFAULT_SWEEP_INTERVAL_SECONDS)),

            # Compression
            ghostscript_candidates=candidates or GHOSTSCRIPT_CANDIDATES,
            default_compression_level=_env("DEFAULT_COMPRESSION_LEVEL", DEFAULT_COMPRESSION_LEVEL).strip().lower()
            or DEFAULT_COMPRESSION_LEVEL,

            # Environment
            production=_env("ENV").strip().lower() == "production",
            log_level=_env("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_json=_env_bool("LOG_JSON"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary for diagnostics"""
        return {
            "staging_dir": str(self.staging_dir),
            "grace_delay": self.grace_delay,
            "split_grace_delay": self.split_grace_delay,
            "retention": self.retention,
            "sweep_interval": self.sweep_interval,
            "ghostscript_candidates": list(self.ghostscript_candidates),
            "default_compression_level": self.default_compression_level,
            "production": self.production,
            "log_level": self.log_level,
            "log_json": self.log_json,
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment"""
    global _settings
    _settings = None
    return get_settings()
