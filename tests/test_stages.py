"""
Tests for the stage library: style/quality resolution, cut planning and
FFmpeg argument construction. No external tools are invoked.
"""

import pytest

from conftest import SILENCE_LOG


class TestStyleResolution:
    def test_known_style_and_intensity(self):
        from quickedit.core.stages import Style, resolve_style_parameters
        params = resolve_style_parameters("mrbeast", "extreme")
        assert params.style == Style.MRBEAST
        assert params.multiplier == 2.0
        assert params.contrast == 1.5
        assert params.fps == 30

    def test_resolution_is_deterministic(self):
        from quickedit.core.stages import build_filter_chain, render_filter_chain, resolve_style_parameters
        a = render_filter_chain(build_filter_chain(resolve_style_parameters("vlog", "high")))
        b = render_filter_chain(build_filter_chain(resolve_style_parameters("vlog", "high")))
        assert a == b

    def test_unknown_style_falls_back_to_cinematic(self):
        from quickedit.core.stages import resolve_style_parameters
        unknown = resolve_style_parameters("unknown-style", "medium")
        cinematic = resolve_style_parameters("cinematic", "medium")
        assert unknown == cinematic

    def test_unknown_intensity_uses_unit_multiplier(self):
        from quickedit.core.stages import resolve_style_parameters
        assert resolve_style_parameters("vlog", "ludicrous").multiplier == 1.0
        assert resolve_style_parameters("vlog", None).multiplier == 1.0

    def test_case_and_whitespace_insensitive(self):
        from quickedit.core.stages import Intensity, Style, resolve_style_parameters
        params = resolve_style_parameters("  PodCast ", "LIGHT")
        assert params.style == Style.PODCAST
        assert params.multiplier == 0.5
        assert Intensity.parse("High") == Intensity.HIGH

    def test_captions(self):
        from quickedit.core.stages import DEFAULT_CAPTION, caption_for_style
        assert caption_for_style("cinematic") == "CINEMATIC MASTERPIECE"
        assert caption_for_style("mrbeast") == "EPIC CONTENT"
        assert caption_for_style("vlog") == "DAILY VLOG"
        assert caption_for_style("podcast") == "PODCAST EPISODE"
        assert caption_for_style("unknown-style") == DEFAULT_CAPTION


class TestFilterChain:
    def test_cinematic_medium(self):
        from quickedit.core.stages import build_filter_chain, render_filter_chain, resolve_style_parameters
        vf = render_filter_chain(build_filter_chain(resolve_style_parameters("cinematic", "medium")))
        assert vf == (
            "colorlevels=rimin=0.058:gimin=0.058:bimin=0.058:rimax=0.942:gimax=0.942:bimax=0.942,"
            "eq=contrast=1.2:brightness=0.05:saturation=1.1,"
            "unsharp=luma_msize_x=3:luma_msize_y=3:luma_amount=1.5:"
            "chroma_msize_x=3:chroma_msize_y=3:chroma_amount=0.5,"
            "fps=fps=24"
        )

    def test_intensity_adds_eq_stage(self):
        from quickedit.core.stages import build_filter_chain, resolve_style_parameters
        chain = build_filter_chain(resolve_style_parameters("mrbeast", "extreme"))
        names = [s.name for s in chain]
        assert names == ["colorlevels", "eq", "unsharp", "eq"]
        assert chain[-1].render() == "eq=contrast=1.3:saturation=1.2"

    def test_light_intensity_softens(self):
        from quickedit.core.stages import build_filter_chain, resolve_style_parameters
        chain = build_filter_chain(resolve_style_parameters("podcast", "light"))
        assert chain[-1].render() == "eq=contrast=0.85:saturation=0.9"

    def test_only_film_rate_gets_fps_filter(self):
        from quickedit.core.stages import build_filter_chain, resolve_style_parameters
        for style in ("mrbeast", "vlog", "podcast"):
            chain = build_filter_chain(resolve_style_parameters(style, "medium"))
            assert "fps" not in [s.name for s in chain]

    def test_unsharp_sizes_are_valid(self):
        from quickedit.core.stages import STYLE_PRESETS
        for preset in STYLE_PRESETS.values():
            k = preset["sharpen"]
            for size in (k.luma_x, k.luma_y, k.chroma_x, k.chroma_y):
                assert 3 <= size <= 23 and size % 2 == 1


class TestQuality:
    @pytest.mark.parametrize("quality,width,height,crf", [
        ("720p", 1280, 720, 23),
        ("1080p", 1920, 1080, 20),
        ("4k", 3840, 2160, 18),
        ("8k", 7680, 4320, 16),
    ])
    def test_presets(self, quality, width, height, crf):
        from quickedit.core.stages import resolve_quality_parameters
        params = resolve_quality_parameters(quality)
        assert (params.width, params.height, params.crf) == (width, height, crf)

    def test_unknown_quality_falls_back_to_1080p(self):
        from quickedit.core.stages import Quality, resolve_quality_parameters
        assert resolve_quality_parameters("potato").quality == Quality.HD_1080

    def test_quality_args(self):
        from quickedit.core.stages import quality_args, resolve_quality_parameters
        args = quality_args("in.mp4", "out.mp4", resolve_quality_parameters("720p"))
        assert args[args.index("-vf") + 1] == "scale=1280:720"
        assert args[args.index("-crf") + 1] == "23"
        assert args[args.index("-movflags") + 1] == "+faststart"
        assert args[-1] == "out.mp4"


class TestCutPlanning:
    def test_parse_silences(self):
        from quickedit.core.stages import TimeSegment, parse_silences
        silences = parse_silences(SILENCE_LOG, 10.0)
        assert silences == [
            TimeSegment(0.0, 1.0),
            TimeSegment(3.5, 5.0),
            TimeSegment(8.0, 10.0),
        ]

    def test_parse_silences_empty(self):
        from quickedit.core.stages import parse_silences
        assert parse_silences("", 10.0) == []
        assert parse_silences("frame=  100 fps=0.0 q=-0.0 size=N/A", 10.0) == []

    def test_plan_keeps_non_silent_regions(self):
        from quickedit.core.stages import TimeSegment, parse_silences, plan_cut_segments
        keep = plan_cut_segments(parse_silences(SILENCE_LOG, 10.0), 10.0, threshold=0.5)
        assert keep == [TimeSegment(1.0, 3.5), TimeSegment(5.0, 8.0)]

    def test_short_silences_are_not_cut(self):
        from quickedit.core.stages import TimeSegment, plan_cut_segments
        assert plan_cut_segments([TimeSegment(2.0, 2.4)], 10.0, threshold=0.5) == []
        keep = plan_cut_segments([TimeSegment(2.0, 2.4)], 10.0, threshold=0.3)
        assert keep == [TimeSegment(0.0, 2.0), TimeSegment(2.4, 10.0)]

    def test_no_duration_means_no_plan(self):
        from quickedit.core.stages import TimeSegment, plan_cut_segments
        assert plan_cut_segments([TimeSegment(1.0, 2.0)], 0.0) == []

    def test_cut_styles(self):
        from quickedit.core.stages import (
            AGGRESSIVE_CUT_THRESHOLD, DEFAULT_CUT_THRESHOLD, cut_threshold_for, style_allows_cuts,
        )
        assert style_allows_cuts("mrbeast")
        assert style_allows_cuts("cinematic")
        assert style_allows_cuts("vlog")
        assert not style_allows_cuts("podcast")
        assert not style_allows_cuts("unknown-style")
        assert cut_threshold_for("mrbeast") == AGGRESSIVE_CUT_THRESHOLD
        assert cut_threshold_for("vlog") == DEFAULT_CUT_THRESHOLD

    def test_jump_cut_filter(self):
        from quickedit.core.stages import TimeSegment, build_jump_cut_filter
        fc = build_jump_cut_filter([TimeSegment(1.0, 3.5)], with_audio=True)
        assert fc == (
            "[0:v]trim=start=1:end=3.5,setpts=PTS-STARTPTS[v0];"
            "[0:a]atrim=start=1:end=3.5,asetpts=PTS-STARTPTS[a0];"
            "[v0][a0]concat=n=1:v=1:a=1[outv][outa]"
        )

    def test_jump_cut_filter_video_only(self):
        from quickedit.core.stages import TimeSegment, build_jump_cut_filter, cut_args
        segs = [TimeSegment(0.0, 1.0), TimeSegment(2.0, 3.0)]
        fc = build_jump_cut_filter(segs, with_audio=False)
        assert "atrim" not in fc
        assert fc.endswith("[v0][v1]concat=n=2:v=1:a=0[outv]")
        args = cut_args("in.mp4", "out.mp4", segs, with_audio=False)
        assert "[outa]" not in args


class TestArgs:
    def test_detect_cuts_args(self):
        from quickedit.core.stages import detect_cuts_args
        args = detect_cuts_args("in.mp4")
        assert args[args.index("-af") + 1] == "silencedetect=noise=-50dB:d=0.5"
        assert args[-3:] == ["-f", "null", "-"]

    def test_style_args_end_with_output(self):
        from quickedit.core.stages import resolve_style_parameters, style_args
        args = style_args("in.mp4", "styled.mp4", resolve_style_parameters("vlog", "medium"))
        assert args[:3] == ["-hide_banner", "-nostdin", "-y"]
        assert args[args.index("-i") + 1] == "in.mp4"
        assert args[-1] == "styled.mp4"

    def test_caption_escaping(self):
        from quickedit.core.stages import build_caption_filter, escape_drawtext
        assert escape_drawtext("50%: it's") == "50\\%\\: it’s"
        assert build_caption_filter("EPIC CONTENT").startswith("drawtext=text='EPIC CONTENT':")

    def test_passthrough_is_stream_copy(self):
        from quickedit.core.stages import passthrough_args
        args = passthrough_args("in.mp4", "out.mp4")
        assert args[args.index("-c") + 1] == "copy"
        assert args[-1] == "out.mp4"

    def test_catalog(self):
        from quickedit.core.stages import get_available_intensities, get_available_qualities, get_available_styles
        styles = {s["name"]: s for s in get_available_styles()}
        assert set(styles) == {"cinematic", "mrbeast", "vlog", "podcast"}
        assert styles["cinematic"]["default"]
        assert not styles["podcast"]["jump_cuts"]
        assert [i["name"] for i in get_available_intensities()] == ["light", "medium", "high", "extreme"]
        assert [q["name"] for q in get_available_qualities()] == ["720p", "1080p", "4k", "8k"]
