"""
QuickEdit Stage Library

Pure mapping from (style, intensity, quality) to concrete FFmpeg argument
lists for each pipeline stage:
  - Style filter chain (color levels, contrast/brightness/saturation, sharpening, frame rate)
  - Cut detection (silencedetect) and jump-cut planning
  - Caption overlay (drawtext)
  - Quality transcode (scale + CRF)

Nothing here touches the filesystem or the job store. Same inputs always
produce the same arguments, so a retried stage runs exactly the same command.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple


# ---------------------------------------------------------------------------
# Option enums
# ---------------------------------------------------------------------------
class _Option(str, Enum):
    """String enum whose ``parse`` maps unknown values onto a default member."""

    @classmethod
    def default(cls) -> "_Option":
        raise NotImplementedError

    @classmethod
    def parse(cls, value) -> "_Option":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        return cls.default()


class Style(_Option):
    CINEMATIC = "cinematic"
    MRBEAST = "mrbeast"
    VLOG = "vlog"
    PODCAST = "podcast"

    @classmethod
    def default(cls) -> "Style":
        return cls.CINEMATIC


class Intensity(_Option):
    LIGHT = "light"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"

    @classmethod
    def default(cls) -> "Intensity":
        return cls.MEDIUM


class Quality(_Option):
    HD_720 = "720p"
    HD_1080 = "1080p"
    UHD_4K = "4k"
    UHD_8K = "8k"

    @classmethod
    def default(cls) -> "Quality":
        return cls.HD_1080


INTENSITY_MULTIPLIERS: Dict[Intensity, float] = {
    Intensity.LIGHT: 0.5,
    Intensity.MEDIUM: 1.0,
    Intensity.HIGH: 1.5,
    Intensity.EXTREME: 2.0,
}

DEFAULT_MULTIPLIER = 1.0

# Styles whose edits include jump cuts at detected low-activity segments
AGGRESSIVE_CUT_STYLES = frozenset({Style.MRBEAST, Style.CINEMATIC, Style.VLOG})


# ---------------------------------------------------------------------------
# Style parameters
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class UnsharpKernel:
    """FFmpeg unsharp filter parameters (matrix sizes: odd, 3-23)."""
    luma_x: int = 3
    luma_y: int = 3
    luma_amount: float = 1.0
    chroma_x: int = 3
    chroma_y: int = 3
    chroma_amount: float = 0.0


@dataclass(frozen=True)
class StyleParameters:
    """Structured filter description for one (style, intensity) pair."""
    style: Style
    black_point: float
    white_point: float
    contrast: float
    brightness: float
    saturation: float
    sharpen: UnsharpKernel
    fps: int
    multiplier: float = DEFAULT_MULTIPLIER


STYLE_PRESETS: Dict[Style, Dict] = {
    Style.CINEMATIC: {
        "label": "Cinematic",
        "black_point": 0.058, "white_point": 0.942,
        "contrast": 1.2, "brightness": 0.05, "saturation": 1.1,
        "sharpen": UnsharpKernel(3, 3, 1.5, 3, 3, 0.5),
        "fps": 24,
        "caption": "CINEMATIC MASTERPIECE",
    },
    Style.MRBEAST: {
        "label": "High Energy",
        "black_point": 0.1, "white_point": 0.9,
        "contrast": 1.5, "brightness": 0.1, "saturation": 1.3,
        "sharpen": UnsharpKernel(5, 5, 2.0, 5, 5, 1.0),
        "fps": 30,
        "caption": "EPIC CONTENT",
    },
    Style.VLOG: {
        "label": "Vlog",
        "black_point": 0.05, "white_point": 0.95,
        "contrast": 1.1, "brightness": 0.02, "saturation": 1.05,
        "sharpen": UnsharpKernel(3, 3, 0.8, 3, 3, 0.4),
        "fps": 30,
        "caption": "DAILY VLOG",
    },
    Style.PODCAST: {
        "label": "Podcast",
        "black_point": 0.02, "white_point": 0.98,
        "contrast": 1.05, "brightness": 0.0, "saturation": 0.95,
        "sharpen": UnsharpKernel(3, 3, 0.5, 3, 3, 0.25),
        "fps": 30,
        "caption": "PODCAST EPISODE",
    },
}

DEFAULT_CAPTION = "AI EDITED"

# Frame rate that gets an explicit conform filter (film look)
FILM_FPS = 24


def resolve_style_parameters(style, intensity) -> StyleParameters:
    """
    Resolve a style/intensity pair to its filter parameters.

    Unknown styles fall back to cinematic; unknown intensities to a 1.0 multiplier.
    """
    style_key = Style.parse(style)
    preset = STYLE_PRESETS[style_key]
    multiplier = INTENSITY_MULTIPLIERS.get(Intensity.parse(intensity), DEFAULT_MULTIPLIER)
    return StyleParameters(
        style=style_key,
        black_point=preset["black_point"],
        white_point=preset["white_point"],
        contrast=preset["contrast"],
        brightness=preset["brightness"],
        saturation=preset["saturation"],
        sharpen=preset["sharpen"],
        fps=preset["fps"],
        multiplier=multiplier,
    )


def caption_for_style(style) -> str:
    """Static caption text for a style."""
    key = str(style or "").strip().lower()
    for member in Style:
        if member.value == key:
            return STYLE_PRESETS[member]["caption"]
    return DEFAULT_CAPTION


# ---------------------------------------------------------------------------
# Filter chain
# ---------------------------------------------------------------------------
def _num(value: float) -> str:
    """Stable, compact number formatting for filter options."""
    return f"{round(float(value), 4):g}"


@dataclass(frozen=True)
class FilterStage:
    """One FFmpeg filter with ordered options."""
    name: str
    options: Tuple[Tuple[str, str], ...] = ()

    def render(self) -> str:
        if not self.options:
            return self.name
        opts = ":".join(f"{k}={v}" for k, v in self.options)
        return f"{self.name}={opts}"


def build_filter_chain(params: StyleParameters) -> List[FilterStage]:
    """Ordered filter stages for the apply_style stage."""
    bp, wp = _num(params.black_point), _num(params.white_point)
    chain = [
        FilterStage("colorlevels", (
            ("rimin", bp), ("gimin", bp), ("bimin", bp),
            ("rimax", wp), ("gimax", wp), ("bimax", wp),
        )),
        FilterStage("eq", (
            ("contrast", _num(params.contrast)),
            ("brightness", _num(params.brightness)),
            ("saturation", _num(params.saturation)),
        )),
    ]

    k = params.sharpen
    chain.append(FilterStage("unsharp", (
        ("luma_msize_x", str(k.luma_x)), ("luma_msize_y", str(k.luma_y)),
        ("luma_amount", _num(k.luma_amount)),
        ("chroma_msize_x", str(k.chroma_x)), ("chroma_msize_y", str(k.chroma_y)),
        ("chroma_amount", _num(k.chroma_amount)),
    )))

    if params.multiplier != DEFAULT_MULTIPLIER:
        m = params.multiplier
        chain.append(FilterStage("eq", (
            ("contrast", _num(1 + (m - 1) * 0.3)),
            ("saturation", _num(1 + (m - 1) * 0.2)),
        )))

    if params.fps == FILM_FPS:
        chain.append(FilterStage("fps", (("fps", str(params.fps)),)))

    return chain


def render_filter_chain(chain: Sequence[FilterStage]) -> str:
    """Join filter stages into a single ``-vf`` argument."""
    return ",".join(stage.render() for stage in chain)


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class QualityParameters:
    quality: Quality
    width: int
    height: int
    crf: int
    preset: str = "slow"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"


QUALITY_PRESETS: Dict[Quality, Dict] = {
    Quality.HD_720: {"label": "720p HD", "width": 1280, "height": 720, "crf": 23},
    Quality.HD_1080: {"label": "1080p Full HD", "width": 1920, "height": 1080, "crf": 20},
    Quality.UHD_4K: {"label": "4K UHD", "width": 3840, "height": 2160, "crf": 18},
    Quality.UHD_8K: {"label": "8K UHD", "width": 7680, "height": 4320, "crf": 16},
}


def resolve_quality_parameters(quality) -> QualityParameters:
    """Target resolution and CRF. Unknown qualities fall back to 1080p."""
    key = Quality.parse(quality)
    preset = QUALITY_PRESETS[key]
    return QualityParameters(
        quality=key, width=preset["width"], height=preset["height"], crf=preset["crf"],
    )


# ---------------------------------------------------------------------------
# Cut detection and planning
# ---------------------------------------------------------------------------
# Audio below this level for at least SILENCE_MIN_DURATION is a cut candidate
SILENCE_NOISE_DB = -50
SILENCE_MIN_DURATION = 0.5

# Shortest silence actually removed by apply_cuts
AGGRESSIVE_CUT_THRESHOLD = 0.3
DEFAULT_CUT_THRESHOLD = 0.5

# Kept pieces shorter than this are dropped rather than concatenated
MIN_KEEP_SEGMENT = 0.1

_SILENCE_START_RE = re.compile(r"silence_start:\s*(-?[\d.]+)")
_SILENCE_END_RE = re.compile(r"silence_end:\s*(-?[\d.]+)")


@dataclass(frozen=True)
class TimeSegment:
    """A time segment with start and end in seconds."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


def parse_silences(output: str, duration: float) -> List[TimeSegment]:
    """
    Parse silencedetect log lines into silent segments.

    Format:  [silencedetect @ 0x...] silence_start: 1.234
             [silencedetect @ 0x...] silence_end: 5.678 | silence_duration: 4.444

    A trailing silence_start without an end runs to ``duration``.
    """
    starts: List[float] = []
    ends: List[float] = []
    for line in output.splitlines():
        m = _SILENCE_START_RE.search(line)
        if m:
            starts.append(max(0.0, float(m.group(1))))
        m = _SILENCE_END_RE.search(line)
        if m:
            ends.append(float(m.group(1)))

    silences = []
    for i, start in enumerate(starts):
        end = ends[i] if i < len(ends) else duration
        if end > start:
            silences.append(TimeSegment(start, end))
    return silences


def cut_threshold_for(style) -> float:
    return AGGRESSIVE_CUT_THRESHOLD if Style.parse(style) == Style.MRBEAST else DEFAULT_CUT_THRESHOLD


def style_allows_cuts(style) -> bool:
    """Only styles that explicitly request jump cuts get them; unknown styles do not."""
    key = str(style or "").strip().lower()
    return any(member.value == key for member in AGGRESSIVE_CUT_STYLES)


def plan_cut_segments(
    silences: Sequence[TimeSegment],
    duration: float,
    threshold: float = DEFAULT_CUT_THRESHOLD,
) -> List[TimeSegment]:
    """
    Segments to keep after removing silences of at least ``threshold`` seconds.

    Returns an empty list when nothing would be removed (no cut needed).
    """
    if duration <= 0:
        return []
    removable = sorted(
        (s for s in silences if s.duration >= threshold),
        key=lambda s: s.start,
    )
    if not removable:
        return []

    keep = []
    cursor = 0.0
    for silence in removable:
        start = max(silence.start, 0.0)
        if start - cursor >= MIN_KEEP_SEGMENT:
            keep.append(TimeSegment(round(cursor, 3), round(min(start, duration), 3)))
        cursor = max(cursor, silence.end)
    if duration - cursor >= MIN_KEEP_SEGMENT:
        keep.append(TimeSegment(round(cursor, 3), round(duration, 3)))
    return keep


def build_jump_cut_filter(segments: Sequence[TimeSegment], with_audio: bool = True) -> str:
    """filter_complex that trims each kept segment and concatenates them."""
    parts = []
    labels = []
    for i, seg in enumerate(segments):
        s, e = _num(seg.start), _num(seg.end)
        parts.append(f"[0:v]trim=start={s}:end={e},setpts=PTS-STARTPTS[v{i}]")
        labels.append(f"[v{i}]")
        if with_audio:
            parts.append(f"[0:a]atrim=start={s}:end={e},asetpts=PTS-STARTPTS[a{i}]")
            labels.append(f"[a{i}]")
    outputs = "[outv][outa]" if with_audio else "[outv]"
    a = 1 if with_audio else 0
    parts.append(f"{''.join(labels)}concat=n={len(segments)}:v=1:a={a}{outputs}")
    return ";".join(parts)


# ---------------------------------------------------------------------------
# Caption overlay
# ---------------------------------------------------------------------------
def escape_drawtext(text: str) -> str:
    """Escape text for use inside a quoted drawtext ``text`` option."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "’")
        .replace(":", "\\:")
        .replace("%", "\\%")
    )


def build_caption_filter(text: str) -> str:
    return (
        f"drawtext=text='{escape_drawtext(text)}':fontcolor=white:fontsize=48"
        ":box=1:boxcolor=black@0.5:boxborderw=5:x=(w-text_w)/2:y=h-th-10"
    )


# ---------------------------------------------------------------------------
# Argument builders (executable not included)
# ---------------------------------------------------------------------------
_FFMPEG_PREAMBLE = ["-hide_banner", "-nostdin", "-y"]


def probe_args(source: str) -> List[str]:
    return [
        "-v", "quiet",
        "-print_format", "json",
        "-show_format", "-show_streams",
        source,
    ]


def detect_cuts_args(source: str, noise_db: float = SILENCE_NOISE_DB,
                     min_duration: float = SILENCE_MIN_DURATION) -> List[str]:
    return [
        "-hide_banner", "-nostdin", "-nostats",
        "-i", source,
        "-vn", "-sn",
        "-af", f"silencedetect=noise={_num(noise_db)}dB:d={_num(min_duration)}",
        "-f", "null", "-",
    ]


def style_args(source: str, output: str, params: StyleParameters) -> List[str]:
    return [
        *_FFMPEG_PREAMBLE,
        "-i", source,
        "-vf", render_filter_chain(build_filter_chain(params)),
        "-c:v", "libx264", "-preset", "medium", "-pix_fmt", "yuv420p",
        "-c:a", "copy",
        output,
    ]


def cut_args(source: str, output: str, segments: Sequence[TimeSegment],
             with_audio: bool = True) -> List[str]:
    args = [
        *_FFMPEG_PREAMBLE,
        "-i", source,
        "-filter_complex", build_jump_cut_filter(segments, with_audio),
        "-map", "[outv]",
    ]
    if with_audio:
        args += ["-map", "[outa]", "-c:a", "aac", "-b:a", "192k"]
    args += ["-c:v", "libx264", "-preset", "fast", "-pix_fmt", "yuv420p", output]
    return args


def caption_args(source: str, output: str, text: str) -> List[str]:
    return [
        *_FFMPEG_PREAMBLE,
        "-i", source,
        "-vf", build_caption_filter(text),
        "-c:v", "libx264", "-preset", "medium", "-pix_fmt", "yuv420p",
        "-c:a", "copy",
        output,
    ]


def quality_args(source: str, output: str, params: QualityParameters) -> List[str]:
    return [
        *_FFMPEG_PREAMBLE,
        "-i", source,
        "-vf", f"scale={params.width}:{params.height}",
        "-c:v", "libx264", "-crf", str(params.crf), "-preset", params.preset,
        "-pix_fmt", "yuv420p",
        "-c:a", params.audio_codec, "-b:a", params.audio_bitrate,
        "-movflags", "+faststart",
        output,
    ]


def passthrough_args(source: str, output: str) -> List[str]:
    """Stream-copy the source unchanged into the output container."""
    return [
        *_FFMPEG_PREAMBLE,
        "-i", source,
        "-map", "0",
        "-c", "copy",
        "-movflags", "+faststart",
        output,
    ]


# ---------------------------------------------------------------------------
# Catalog (for API / CLI listing)
# ---------------------------------------------------------------------------
def get_available_styles() -> List[Dict]:
    return [
        {
            "name": style.value,
            "label": preset["label"],
            "fps": preset["fps"],
            "jump_cuts": style in AGGRESSIVE_CUT_STYLES,
            "caption": preset["caption"],
            "default": style == Style.default(),
        }
        for style, preset in STYLE_PRESETS.items()
    ]


def get_available_intensities() -> List[Dict]:
    return [
        {"name": i.value, "multiplier": m, "default": i == Intensity.default()}
        for i, m in INTENSITY_MULTIPLIERS.items()
    ]


def get_available_qualities() -> List[Dict]:
    return [
        {
            "name": q.value, "label": p["label"],
            "width": p["width"], "height": p["height"], "crf": p["crf"],
            "default": q == Quality.default(),
        }
        for q, p in QUALITY_PRESETS.items()
    ]
