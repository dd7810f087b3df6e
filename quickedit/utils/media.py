"""
Media file probing utilities using ffprobe.

Extracts the duration/dimension metadata the pipeline's analyze stage needs.
"""

import json
import os
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional
from urllib.parse import urlparse

from ..core.errors import SourceUnreadableError, ToolExecutionError, ToolTimeoutError
from ..core.stages import probe_args
from ..core.tools import ToolRunner

REMOTE_SCHEMES = ("http", "https")


@dataclass
class MediaInfo:
    """Media file information."""
    path: str = ""
    duration: float = 0.0
    format_name: str = ""
    width: int = 0
    height: int = 0
    fps: float = 0.0
    video_codec: str = ""
    has_video: bool = False
    has_audio: bool = False

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


def is_remote(source_ref: str) -> bool:
    """Whether a source reference is a remote URL rather than a local path."""
    return urlparse(source_ref).scheme.lower() in REMOTE_SCHEMES


def check_source(source_ref: str) -> None:
    """
    Fail fast on local sources that cannot be opened.

    Remote URLs are left to ffprobe.

    Raises:
        SourceUnreadableError: Missing, not a file, or unreadable.
    """
    if not source_ref:
        raise SourceUnreadableError(source_ref, "empty source reference")
    if is_remote(source_ref):
        return
    if not os.path.isfile(source_ref):
        raise SourceUnreadableError(source_ref, "file not found")
    if not os.access(source_ref, os.R_OK):
        raise SourceUnreadableError(source_ref, "permission denied")


def _parse_fps(rate: str) -> float:
    try:
        return float(Fraction(rate))
    except (ValueError, ZeroDivisionError, TypeError):
        return 0.0


def parse_probe_output(source_ref: str, stdout: str) -> MediaInfo:
    """
    Parse ffprobe ``-print_format json`` output.

    Raises:
        SourceUnreadableError: Output is not JSON or has no video stream.
    """
    try:
        data = json.loads(stdout or "")
    except json.JSONDecodeError as e:
        raise SourceUnreadableError(source_ref, "unparsable probe output") from e
    if not isinstance(data, dict):
        raise SourceUnreadableError(source_ref, "unexpected probe output")

    fmt = data.get("format") or {}
    if not isinstance(fmt, dict):
        fmt = {}
    info = MediaInfo(path=source_ref, format_name=str(fmt.get("format_name", "")))
    try:
        info.duration = float(fmt.get("duration", 0) or 0)
    except (TypeError, ValueError):
        info.duration = 0.0

    streams = data.get("streams") or []
    if not isinstance(streams, list):
        streams = []
    for stream in streams:
        if not isinstance(stream, dict):
            continue
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not info.has_video:
            info.has_video = True
            try:
                info.width = int(stream.get("width", 0) or 0)
                info.height = int(stream.get("height", 0) or 0)
            except (TypeError, ValueError) as e:
                raise SourceUnreadableError(source_ref, "invalid video dimensions") from e
            info.fps = _parse_fps(stream.get("r_frame_rate", "0/1"))
            info.video_codec = stream.get("codec_name", "")
            if not info.duration and stream.get("duration"):
                try:
                    info.duration = float(stream["duration"])
                except (TypeError, ValueError):
                    pass
        elif codec_type == "audio":
            info.has_audio = True

    if not info.has_video:
        raise SourceUnreadableError(source_ref, "no video stream")
    return info


def probe(
    source_ref: str,
    runner: Optional[ToolRunner] = None,
    ffprobe_path: str = "ffprobe",
    timeout: float = 60.0,
) -> MediaInfo:
    """
    Probe a media source with ffprobe.

    Args:
        source_ref: Local path or http(s) URL.
        runner: ToolRunner to use (a default one is created if None).
        ffprobe_path: ffprobe executable.
        timeout: Wall-clock limit in seconds.

    Raises:
        SourceUnreadableError: Source missing, rejected by ffprobe, or has no video.
        ToolLaunchError: ffprobe could not be started.
    """
    check_source(source_ref)
    runner = runner or ToolRunner()
    try:
        result = runner.run(ffprobe_path, probe_args(source_ref), timeout=timeout)
    except ToolTimeoutError:
        raise
    except ToolExecutionError as e:
        # ffprobe only exits non-zero when it cannot open or demux the input
        raise SourceUnreadableError(source_ref, f"ffprobe exit code {e.exit_code}") from e
    return parse_probe_output(source_ref, result.stdout)
