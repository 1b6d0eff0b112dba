"""Tests for the ffmpeg/ffprobe gateway."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from media_pipeline.core.errors import TransformFailed
from media_pipeline.services.media_transform import (
    EFFECTS,
    Effect,
    MediaTransformGateway,
    build_concat_manifest,
    build_effect_filter,
    escape_concat_path,
    resolution_for,
    select_effect,
    stderr_tail,
)


@pytest.fixture
def gateway(settings, logger):
    """Gateway with default settings."""
    return MediaTransformGateway(settings, logger)


def option_value(args, option):
    return args[args.index(option) + 1]


# ----------------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------------


def test_select_effect_cycles_through_five_effects():
    """Test effects repeat every five scenes."""
    assert [select_effect(i) for i in range(6)] == [
        Effect.ZOOM_IN,
        Effect.ZOOM_OUT,
        Effect.PAN_LEFT,
        Effect.PAN_RIGHT,
        Effect.ZOOM_PAN,
        Effect.ZOOM_IN,
    ]
    assert len(EFFECTS) == 5


def test_resolution_for_aspect_ratios():
    """Test output resolutions with a 16:9 default."""
    assert resolution_for("16:9") == (1920, 1080)
    assert resolution_for("9:16") == (1080, 1920)
    assert resolution_for("1:1") == (1080, 1080)
    assert resolution_for(None) == (1920, 1080)


@pytest.mark.parametrize("effect", list(Effect))
def test_effect_filter_uses_upscaled_zoompan(effect):
    """Test every effect upscales, runs zoompan for the frame count and outputs the target size."""
    vf = build_effect_filter(effect, 1920, 1080, frames=100, fps=25, max_zoom=1.2, upscale_factor=4)

    assert vf.startswith("scale=7680:4320")
    assert "zoompan=" in vf
    assert ":d=100:" in vf
    assert "s=1920x1080" in vf
    assert "fps=25" in vf
    assert "1.2" in vf


def test_escape_concat_path():
    """Test backslashes become slashes and quotes are shell-escaped."""
    assert escape_concat_path(Path("C:\\clips\\it's.mp4")) == "C:/clips/it'\\''s.mp4"


def test_concat_manifest_preserves_order():
    """Test manifest lines follow the input order."""
    manifest = build_concat_manifest([Path("/w/scene_3.mp4"), Path("/w/scene_1.mp4")])
    assert manifest == "file '/w/scene_3.mp4'\nfile '/w/scene_1.mp4'\n"


def test_stderr_tail_keeps_last_lines():
    """Test only the last non-empty lines are kept."""
    stderr = b"\n".join(f"line {i}".encode() for i in range(10)) + b"\n\n"
    assert stderr_tail(stderr, lines=2) == "line 8 | line 9"
    assert stderr_tail(b"") == ""


# ----------------------------------------------------------------------------
# Subprocess handling
# ----------------------------------------------------------------------------


def test_run_nonzero_exit_raises_with_stderr_tail(gateway):
    """Test a failing process raises TransformFailed with its exit code."""
    script = "import sys; sys.stderr.write('first\\nboom\\n'); sys.exit(3)"

    with pytest.raises(TransformFailed) as exc_info:
        asyncio.run(gateway._run([sys.executable, "-c", script]))

    assert exc_info.value.exit_code == 3
    assert exc_info.value.stderr_tail.endswith("boom")


def test_run_timeout_kills_process(settings, logger):
    """Test a process exceeding the timeout fails with no exit code."""
    settings.transform_timeout_seconds = 0.5
    gateway = MediaTransformGateway(settings, logger)

    with pytest.raises(TransformFailed) as exc_info:
        asyncio.run(gateway._run([sys.executable, "-c", "import time; time.sleep(30)"]))

    assert exc_info.value.exit_code is None
    assert "timed out" in str(exc_info.value)


def test_missing_executable_raises(settings, logger, tmp_path):
    """Test a missing executable is reported as TransformFailed."""
    settings.ffmpeg_path = str(tmp_path / "no-such-ffmpeg")
    gateway = MediaTransformGateway(settings, logger)

    with pytest.raises(TransformFailed, match="executable not found"):
        asyncio.run(gateway.extract_thumbnail(tmp_path / "in.mp4", tmp_path / "out.jpg"))


# ----------------------------------------------------------------------------
# Probe
# ----------------------------------------------------------------------------


def test_probe_parses_duration(gateway, tmp_path):
    """Test ffprobe output is parsed as seconds."""
    gateway._run = AsyncMock(return_value=(b"12.48\n", b""))

    assert asyncio.run(gateway.probe_duration(tmp_path / "a.mp3")) == pytest.approx(12.48)
    args = gateway._run.call_args.args[0]
    assert args[0] == "ffprobe"
    assert option_value(args, "-show_entries") == "format=duration"


@pytest.mark.parametrize("stdout", [b"N/A\n", b"", b"0\n", b"nan\n"])
def test_probe_unparseable_output_uses_default(gateway, tmp_path, stdout):
    """Test unusable ffprobe output falls back to the default duration."""
    gateway._run = AsyncMock(return_value=(stdout, b""))
    assert asyncio.run(gateway.probe_duration(tmp_path / "a.mp3")) == 5.0


def test_probe_failure_uses_default(settings, logger, tmp_path):
    """Test a missing ffprobe falls back to the configured default."""
    settings.ffprobe_path = str(tmp_path / "no-such-ffprobe")
    settings.probe_default_seconds = 7.5
    gateway = MediaTransformGateway(settings, logger)

    assert asyncio.run(gateway.probe_duration(tmp_path / "a.mp3")) == 7.5


# ----------------------------------------------------------------------------
# Scene clips, concatenation and thumbnails
# ----------------------------------------------------------------------------


def test_render_scene_clip_arguments(gateway, tmp_path):
    """Test the clip command: still image plus audio, shortest track wins."""
    gateway.probe_duration = AsyncMock(return_value=3.0)
    gateway._run = AsyncMock(return_value=(b"", b""))

    out = asyncio.run(
        gateway.render_scene_clip(
            tmp_path / "img.png", tmp_path / "a.mp3", tmp_path / "clip.mp4", (1920, 1080), Effect.PAN_LEFT
        )
    )

    assert out == tmp_path / "clip.mp4"
    args = gateway._run.call_args.args[0]
    assert args[0] == "ffmpeg"
    assert "-shortest" in args
    assert option_value(args, "-c:v") == "libx264"
    assert option_value(args, "-c:a") == "aac"
    assert option_value(args, "-b:a") == "192k"
    assert option_value(args, "-pix_fmt") == "yuv420p"
    assert option_value(args, "-movflags") == "+faststart"
    assert ":d=75:" in option_value(args, "-filter:v")
    assert args[-1] == str(tmp_path / "clip.mp4")


def test_render_scene_clip_caps_display_time(gateway, tmp_path):
    """Test long narration is capped at max_scene_seconds of image time."""
    gateway.probe_duration = AsyncMock(return_value=500.0)
    gateway._run = AsyncMock(return_value=(b"", b""))

    asyncio.run(gateway.render_scene_clip(tmp_path / "i.png", tmp_path / "a.mp3", tmp_path / "c.mp4", (1080, 1080)))

    assert ":d=1500:" in option_value(gateway._run.call_args.args[0], "-filter:v")


def test_concatenate_single_clip_is_byte_copy(gateway, tmp_path):
    """Test one clip is copied without invoking ffmpeg."""
    clip = tmp_path / "scene_1.mp4"
    clip.write_bytes(b"\x00\x01only clip")
    gateway._run = AsyncMock()

    out = asyncio.run(gateway.concatenate_clips([clip], tmp_path / "final.mp4"))

    assert out.read_bytes() == b"\x00\x01only clip"
    gateway._run.assert_not_called()


def test_concatenate_many_clips_uses_concat_demuxer(gateway, tmp_path):
    """Test several clips are stream-copied through a manifest in input order."""
    clips = [tmp_path / "scene_2.mp4", tmp_path / "scene_1.mp4", tmp_path / "scene_3.mp4"]
    gateway._run = AsyncMock(return_value=(b"", b""))

    asyncio.run(gateway.concatenate_clips(clips, tmp_path / "final.mp4"))

    args = gateway._run.call_args.args[0]
    assert option_value(args, "-f") == "concat"
    assert option_value(args, "-safe") == "0"
    assert option_value(args, "-c") == "copy"
    manifest = Path(option_value(args, "-i")).read_text(encoding="utf-8")
    assert manifest == build_concat_manifest(clips)


def test_concatenate_nothing_is_an_error(gateway, tmp_path):
    """Test an empty clip list is rejected."""
    with pytest.raises(ValueError):
        asyncio.run(gateway.concatenate_clips([], tmp_path / "final.mp4"))


def test_extract_thumbnail_arguments(gateway, tmp_path):
    """Test one high-quality frame at the configured offset."""
    gateway._run = AsyncMock(return_value=(b"", b""))

    asyncio.run(gateway.extract_thumbnail(tmp_path / "final.mp4", tmp_path / "thumb.jpg"))

    args = gateway._run.call_args.args[0]
    assert option_value(args, "-ss") == "1.0"
    assert option_value(args, "-vframes") == "1"
    assert option_value(args, "-q:v") == "2"
