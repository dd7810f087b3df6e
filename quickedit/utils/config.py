"""
Configuration management for QuickEdit.

Handles pipeline defaults, environment overrides, and named style presets.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

from ..core.jobs import StyleConfig

QUICKEDIT_HOME = os.path.join(os.path.expanduser("~"), ".quickedit")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")


@dataclass
class PipelineConfig:
    """Configuration for the job pipeline."""
    # Executables (bare names are resolved on PATH)
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    # Whole-pipeline attempts before the pass-through fallback
    max_attempts: int = 3
    # Linear backoff: sleep retry_backoff * attempt seconds between attempts
    retry_backoff: float = 1.0
    # Wall-clock limit per tool invocation (seconds)
    tool_timeout: float = 3600.0
    # Wall-clock limit for ffprobe (seconds)
    probe_timeout: float = 60.0
    # Where final artifacts are written
    output_dir: str = field(default_factory=lambda: os.path.join(QUICKEDIT_HOME, "output"))
    # Parent directory for job-scoped scratch areas (None = system temp)
    scratch_dir: Optional[str] = None
    # Job store database
    db_path: str = field(default_factory=lambda: os.path.join(QUICKEDIT_HOME, "jobs.db"))

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.retry_backoff < 0:
            raise ValueError(f"retry_backoff cannot be negative, got {self.retry_backoff}")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a config from QUICKEDIT_* environment variables."""
        home = os.environ.get("QUICKEDIT_HOME", "").strip() or QUICKEDIT_HOME
        return cls(
            ffmpeg_path=os.environ.get("QUICKEDIT_FFMPEG", "").strip() or "ffmpeg",
            ffprobe_path=os.environ.get("QUICKEDIT_FFPROBE", "").strip() or "ffprobe",
            max_attempts=_env_int("QUICKEDIT_MAX_ATTEMPTS", 3),
            retry_backoff=_env_float("QUICKEDIT_RETRY_BACKOFF", 1.0),
            tool_timeout=_env_float("QUICKEDIT_TOOL_TIMEOUT", 3600.0),
            probe_timeout=_env_float("QUICKEDIT_PROBE_TIMEOUT", 60.0),
            output_dir=os.environ.get("QUICKEDIT_OUTPUT_DIR", "").strip() or os.path.join(home, "output"),
            scratch_dir=os.environ.get("QUICKEDIT_SCRATCH_DIR", "").strip() or None,
            db_path=os.environ.get("QUICKEDIT_DB", "").strip() or os.path.join(home, "jobs.db"),
        )

    def with_overrides(self, **kwargs) -> "PipelineConfig":
        """Copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


# ----- Presets -----

PRESETS = {
    "default": StyleConfig(),
    "youtube": StyleConfig(style="mrbeast", intensity="high", quality="1080p"),
    "shorts": StyleConfig(style="mrbeast", intensity="extreme", quality="720p"),
    "podcast": StyleConfig(style="podcast", intensity="light", quality="1080p"),
    "archive": StyleConfig(style="cinematic", intensity="medium", quality="4k"),
}


def get_preset(name: str) -> StyleConfig:
    """Get a preset style configuration by name."""
    if not isinstance(name, str) or name not in PRESETS:
        available = ", ".join(PRESETS.keys())
        raise ValueError(f"Unknown preset '{name}'. Available: {available}")
    return PRESETS[name]
