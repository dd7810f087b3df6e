"""
Shared fixtures for QuickEdit tests.

FakeToolRunner stands in for ffmpeg/ffprobe so the pipeline can be driven
through every success and failure path without real media.
"""

import json
import os

import pytest

from quickedit.core.errors import ToolExecutionError
from quickedit.core.tools import ToolResult, ToolRunner

PROBE_JSON = json.dumps({
    "format": {"format_name": "mov,mp4,m4a,3gp,3g2,mj2", "duration": "10.000000"},
    "streams": [
        {"codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080,
         "r_frame_rate": "30/1"},
        {"codec_type": "audio", "codec_name": "aac"},
    ],
})

# Silence pattern: 0-1s, 3.5-5s, 8s-end
SILENCE_LOG = "\n".join([
    "[silencedetect @ 0x55d0] silence_start: 0",
    "[silencedetect @ 0x55d0] silence_end: 1.0 | silence_duration: 1.0",
    "[silencedetect @ 0x55d0] silence_start: 3.5",
    "[silencedetect @ 0x55d0] silence_end: 5.0 | silence_duration: 1.5",
    "[silencedetect @ 0x55d0] silence_start: 8.0",
])


class FakeToolRunner(ToolRunner):
    """
    Records every invocation and answers like ffprobe/ffmpeg would.

    ``fail`` is called with (executable, args) before each run; if it
    returns an exception, that exception is raised instead.
    """

    def __init__(self, probe_json=PROBE_JSON, silence_log=SILENCE_LOG, fail=None):
        super().__init__(timeout=None)
        self.probe_json = probe_json
        self.silence_log = silence_log
        self.fail = fail
        self.calls = []

    def run(self, executable, args, timeout=None):
        args = [str(a) for a in args]
        self.calls.append((executable, args))
        if self.fail is not None:
            err = self.fail(executable, args)
            if err is not None:
                raise err
        if os.path.basename(executable).startswith("ffprobe"):
            return ToolResult(returncode=0, stdout=self.probe_json, stderr="")
        if args[-3:] == ["-f", "null", "-"]:
            return ToolResult(returncode=0, stdout="", stderr=self.silence_log)
        with open(args[-1], "wb") as f:
            f.write(b"\x00\x00\x00\x18ftypmp42")
        return ToolResult(returncode=0, stdout="", stderr="")

    def available(self, executable):
        return True

    def ffmpeg_calls(self):
        return [args for exe, args in self.calls if not os.path.basename(exe).startswith("ffprobe")]


def fail_when(predicate, error=None):
    """Build a ``fail`` hook raising ``error`` (default exit code 1) when predicate(args) holds."""
    def hook(executable, args):
        if predicate(args):
            return error if error is not None else ToolExecutionError(1, "Error while filtering", executable)
        return None
    return hook


@pytest.fixture
def source_video(tmp_path):
    """A placeholder source file; probing is answered by FakeToolRunner."""
    path = tmp_path / "input.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return str(path)


@pytest.fixture
def pipeline_config(tmp_path):
    from quickedit.utils.config import PipelineConfig
    return PipelineConfig(
        retry_backoff=0,
        output_dir=str(tmp_path / "output"),
        scratch_dir=str(tmp_path / "scratch"),
        db_path=":memory:",
    )


@pytest.fixture
def store():
    from quickedit.core.store import JobStore
    with JobStore(":memory:") as s:
        yield s
