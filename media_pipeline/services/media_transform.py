"""Media Transform Gateway - ffmpeg/ffprobe invocations for the render engine."""

import asyncio
import math
import shutil
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from media_pipeline.core.config import Settings
from media_pipeline.core.errors import TransformFailed

RESOLUTIONS = {
    "16:9": (1920, 1080),
    "9:16": (1080, 1920),
    "1:1": (1080, 1080),
}
DEFAULT_ASPECT_RATIO = "16:9"

STDERR_TAIL_LINES = 5
CONCAT_MANIFEST_NAME = "concat_list.txt"


class Effect(str, Enum):
    """Pan/zoom motion applied to a scene's still image."""

    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    PAN_LEFT = "pan_left"
    PAN_RIGHT = "pan_right"
    ZOOM_PAN = "zoom_pan"


EFFECTS = (Effect.ZOOM_IN, Effect.ZOOM_OUT, Effect.PAN_LEFT, Effect.PAN_RIGHT, Effect.ZOOM_PAN)


def select_effect(scene_index: int) -> Effect:
    """Effects cycle with the scene's position in the plan."""
    return EFFECTS[scene_index % len(EFFECTS)]


def resolution_for(aspect_ratio: Optional[str]) -> tuple[int, int]:
    return RESOLUTIONS.get(aspect_ratio or "", RESOLUTIONS[DEFAULT_ASPECT_RATIO])


def stderr_tail(stderr: bytes, lines: int = STDERR_TAIL_LINES) -> str:
    """Last few non-empty lines of a process's stderr."""
    text = stderr.decode("utf-8", errors="replace") if stderr else ""
    kept = [line.strip() for line in text.splitlines() if line.strip()]
    return " | ".join(kept[-lines:])


def escape_concat_path(path: Path) -> str:
    """Path as it must appear inside a concat demuxer ``file '...'`` line."""
    return str(path).replace("\\", "/").replace("'", "'\\''")


def build_concat_manifest(paths: Iterable[Path]) -> str:
    return "".join(f"file '{escape_concat_path(Path(p))}'\n" for p in paths)


def build_effect_filter(
    effect: Effect,
    width: int,
    height: int,
    frames: int,
    fps: int,
    max_zoom: float = 1.2,
    upscale_factor: int = 4,
) -> str:
    """
    ffmpeg filter chain rendering ``frames`` frames of pan/zoom over one image.

    The image is first scaled and cropped to ``upscale_factor`` times the
    target resolution so the zoompan sampling does not jitter, then zoompan
    emits the target resolution. All motion is a function of the output
    frame counter ``on`` and stays within ``max_zoom``.
    """
    frames = max(1, frames)
    up_w, up_h = width * upscale_factor, height * upscale_factor
    step = (max_zoom - 1.0) / frames
    progress = f"on/{frames}"
    center_x = "iw/2-(iw/zoom/2)"
    center_y = "ih/2-(ih/zoom/2)"

    if effect == Effect.ZOOM_IN:
        zoom, x, y = f"min(1+{step:.6f}*on,{max_zoom})", center_x, center_y
    elif effect == Effect.ZOOM_OUT:
        zoom, x, y = f"max({max_zoom}-{step:.6f}*on,1)", center_x, center_y
    elif effect == Effect.PAN_LEFT:
        zoom, x, y = f"{max_zoom}", f"(iw-iw/zoom)*(1-{progress})", center_y
    elif effect == Effect.PAN_RIGHT:
        zoom, x, y = f"{max_zoom}", f"(iw-iw/zoom)*{progress}", center_y
    else:
        zoom, x, y = f"min(1+{step:.6f}*on,{max_zoom})", f"(iw-iw/zoom)*{progress}", center_y

    return (
        f"scale={up_w}:{up_h}:force_original_aspect_ratio=increase,crop={up_w}:{up_h},"
        f"zoompan=z='{zoom}':x='{x}':y='{y}':d={frames}:s={width}x{height}:fps={fps},"
        f"setsar=1,format=yuv420p"
    )


class MediaTransformGateway:
    """Thin async wrapper around the ffmpeg and ffprobe executables."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the gateway.

        Args:
            settings: Application settings (executable paths, encoder preset, timeouts)
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.ffmpeg = settings.ffmpeg_path
        self.ffprobe = settings.ffprobe_path
        self.timeout = settings.transform_timeout_seconds

    async def _run(self, args: list[str]) -> tuple[bytes, bytes]:
        """
        Run one executable to completion.

        Raises:
            TransformFailed: Non-zero exit (exit_code set), missing executable or timeout (exit_code None)
        """
        command = Path(args[0]).name
        self.logger.debug(f"Running: {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TransformFailed(command, None, f"executable not found: {args[0]}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TransformFailed(command, None, f"timed out after {self.timeout:.0f}s")

        if process.returncode != 0:
            raise TransformFailed(command, process.returncode, stderr_tail(stderr))
        return stdout, stderr

    async def probe_duration(self, path: Path) -> float:
        """
        Media duration in seconds.

        Falls back to ``probe_default_seconds`` when ffprobe fails or prints
        something that is not a positive number.
        """
        default = self.settings.probe_default_seconds
        args = [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            stdout, _ = await self._run(args)
            duration = float(stdout.decode("utf-8", errors="replace").strip())
        except (TransformFailed, ValueError) as e:
            self.logger.warning(f"Could not probe duration of {Path(path).name}, using {default}s: {e}")
            return default

        if not math.isfinite(duration) or duration <= 0:
            self.logger.warning(f"Invalid duration {duration} for {Path(path).name}, using {default}s")
            return default
        return duration

    async def render_scene_clip(
        self,
        image_path: Path,
        audio_path: Path,
        out_path: Path,
        resolution: tuple[int, int],
        effect: Effect = Effect.ZOOM_IN,
    ) -> Path:
        """
        Render one still image plus narration into an H.264/AAC clip.

        The image is shown for the narration's length (capped at
        ``max_scene_seconds``); ``-shortest`` trims to the shorter track.

        Returns:
            out_path
        """
        width, height = resolution
        fps = self.settings.video_fps
        audio_seconds = await self.probe_duration(audio_path)
        display_seconds = min(audio_seconds, self.settings.max_scene_seconds)
        frames = max(1, math.ceil(display_seconds * fps))

        video_filter = build_effect_filter(
            effect,
            width,
            height,
            frames,
            fps,
            max_zoom=self.settings.max_zoom,
            upscale_factor=self.settings.upscale_factor,
        )
        args = [
            self.ffmpeg, "-y",
            "-i", str(image_path),
            "-i", str(audio_path),
            "-filter:v", video_filter,
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "libx264",
            "-preset", self.settings.video_preset,
            "-crf", str(self.settings.video_crf),
            "-pix_fmt", "yuv420p",
            "-r", str(fps),
            "-c:a", "aac",
            "-b:a", self.settings.audio_bitrate,
            "-shortest",
            "-movflags", "+faststart",
            str(out_path),
        ]
        self.logger.info(f"Rendering clip {Path(out_path).name} ({effect.value}, {display_seconds:.1f}s, {width}x{height})")
        await self._run(args)
        return Path(out_path)

    async def concatenate_clips(self, clip_paths: list[Path], out_path: Path) -> Path:
        """
        Join clips in order without re-encoding.

        A single clip is copied byte for byte; several clips go through the
        concat demuxer with a manifest written next to ``out_path``.
        """
        if not clip_paths:
            raise ValueError("No clips to concatenate")

        out_path = Path(out_path)
        if len(clip_paths) == 1:
            await asyncio.to_thread(shutil.copyfile, clip_paths[0], out_path)
            return out_path

        manifest_path = out_path.parent / CONCAT_MANIFEST_NAME
        manifest_path.write_text(build_concat_manifest(clip_paths), encoding="utf-8")
        self.logger.info(f"Concatenating {len(clip_paths)} clips")
        await self._run([
            self.ffmpeg, "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest_path),
            "-c", "copy",
            str(out_path),
        ])
        return out_path

    async def extract_thumbnail(self, video_path: Path, out_path: Path) -> Path:
        """Grab one JPEG frame at ``thumbnail_offset_seconds``."""
        await self._run([
            self.ffmpeg, "-y",
            "-ss", str(self.settings.thumbnail_offset_seconds),
            "-i", str(video_path),
            "-vframes", "1",
            "-q:v", "2",
            str(out_path),
        ])
        return Path(out_path)
