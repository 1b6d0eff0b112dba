"""Pipeline state helpers shared by asset generation and rendering.

Everything here is pure: no I/O, no logging, no clock. Callers own the
persistence of the snapshots these helpers build.
"""

from typing import Iterable, Optional

from media_pipeline.models.schemas import (
    AssetError,
    AssetProgress,
    AssetStatus,
    RenderProgress,
    RenderStage,
)

# Share of the progress bar given to the per-scene render loop.
SCENE_LOOP_SHARE = 80

STAGE_PERCENT = {
    RenderStage.PREPARING: 0,
    RenderStage.CONCATENATING: 85,
    RenderStage.GENERATING_THUMBNAIL: 90,
    RenderStage.UPLOADING: 95,
    RenderStage.COMPLETED: 100,
}

USABLE_ASSET_STATUSES = frozenset({AssetStatus.COMPLETED, AssetStatus.PARTIAL})


# ============================================================================
# Asset progress
# ============================================================================


def new_asset_progress(total_scenes: int) -> AssetProgress:
    """Zeroed counters for a run over ``total_scenes`` scenes."""
    return AssetProgress(total_scenes=total_scenes)


def _bump(progress: AssetProgress, field: str) -> AssetProgress:
    current = getattr(progress, field)
    if current >= progress.total_scenes:
        raise ValueError(f"{field} would exceed total_scenes ({progress.total_scenes})")
    setattr(progress, field, current + 1)
    return progress


def record_image_result(progress: AssetProgress, succeeded: bool) -> AssetProgress:
    """Count one finished image task."""
    return _bump(progress, "images_completed" if succeeded else "images_failed")


def record_audio_result(progress: AssetProgress, succeeded: bool) -> AssetProgress:
    """Count one finished audio task (a skipped scene counts as succeeded)."""
    return _bump(progress, "audio_completed" if succeeded else "audio_failed")


def mark_audio_skipped(progress: AssetProgress) -> AssetProgress:
    """Voice disabled for the run: every scene's audio counts as completed."""
    progress.audio_completed = progress.total_scenes
    return progress


def snapshot(progress: AssetProgress) -> AssetProgress:
    """Independent copy suitable for persisting."""
    return progress.model_copy()


def aggregate_status(progress: AssetProgress) -> AssetStatus:
    """
    Classify a finished run.

    FAILED when nothing at all succeeded, PARTIAL when anything failed,
    COMPLETED otherwise.
    """
    if progress.images_completed == 0 and progress.audio_completed == 0:
        return AssetStatus.FAILED
    if progress.images_failed > 0 or progress.audio_failed > 0:
        return AssetStatus.PARTIAL
    return AssetStatus.COMPLETED


def format_asset_error(status: AssetStatus, errors: Iterable[AssetError]) -> Optional[str]:
    """Human-readable summary of every failing scene, or None for a clean run."""
    details = "; ".join(error.describe() for error in errors)
    if status == AssetStatus.FAILED:
        return f"All asset generation failed: {details}"
    if status == AssetStatus.PARTIAL:
        return f"Some assets failed: {details}"
    return None


def is_asset_status_usable(status: AssetStatus) -> bool:
    return status in USABLE_ASSET_STATUSES


# ============================================================================
# Render progress
# ============================================================================


def render_scene_percent(completed_scenes: int, total_scenes: int) -> int:
    """Percentage for the scene loop: round(completed / total * 80)."""
    if total_scenes <= 0:
        return 0
    completed = min(max(completed_scenes, 0), total_scenes)
    return round(completed / total_scenes * SCENE_LOOP_SHARE)


def stage_progress(stage: RenderStage, error: Optional[str] = None) -> RenderProgress:
    """Snapshot for a stage outside the scene loop."""
    if stage == RenderStage.RENDERING_SCENES:
        raise ValueError("use scene_progress for RENDERING_SCENES")
    if stage == RenderStage.FAILED:
        return RenderProgress(stage=stage, progress_percent=0, error=error)
    return RenderProgress(stage=stage, progress_percent=STAGE_PERCENT[stage])


def scene_progress(current_scene: int, completed_scenes: int, total_scenes: int) -> RenderProgress:
    """Snapshot while the scene loop is working on ``current_scene``."""
    return RenderProgress(
        stage=RenderStage.RENDERING_SCENES,
        current_scene=current_scene,
        total_scenes=total_scenes,
        progress_percent=render_scene_percent(completed_scenes, total_scenes),
    )
