"""Background kickoff for asset generation and rendering.

Callers get control back as soon as the work is scheduled; the detached
task records its own terminal state.
"""

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, Optional

from media_pipeline.core.errors import AssetsNotReady, PlanMissing
from media_pipeline.models.schemas import AssetStatus
from media_pipeline.services.asset_orchestrator import AssetGenerationOrchestrator
from media_pipeline.services.render_engine import SceneRenderEngine
from media_pipeline.storage.repository import VideoRepository
from media_pipeline.utils.pipeline_state import is_asset_status_usable

FailureHandler = Callable[[BaseException], Awaitable[None]]

# Strong references so detached tasks are not garbage collected mid-flight
_background_tasks: set[asyncio.Task] = set()


def launch_in_background(
    coro: Coroutine[Any, Any, Any],
    logger: Any,
    name: str,
    on_failure: Optional[FailureHandler] = None,
) -> asyncio.Task:
    """
    Run ``coro`` as a detached task.

    If it raises, the error is logged and ``on_failure`` is scheduled with
    the exception. Must be called from a running event loop.

    Args:
        coro: Coroutine to run
        logger: Logger instance
        name: Task name (used in log lines)
        on_failure: Optional async callback receiving the exception

    Returns:
        The scheduled task
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)

    def _on_done(finished: asyncio.Task) -> None:
        _background_tasks.discard(finished)
        if finished.cancelled():
            logger.warning(f"Background task {name} was cancelled")
            return
        error = finished.exception()
        if error is None:
            logger.info(f"Background task {name} finished")
            return
        logger.error(f"Background task {name} failed: {error}")
        if on_failure is not None:
            follow_up = finished.get_loop().create_task(on_failure(error), name=f"{name}:on_failure")
            _background_tasks.add(follow_up)
            follow_up.add_done_callback(_background_tasks.discard)

    task.add_done_callback(_on_done)
    return task


async def drain_background_tasks() -> None:
    """Wait until every detached task (and its failure handler) has settled."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


async def start_asset_generation(
    video_id: str,
    orchestrator: AssetGenerationOrchestrator,
    repository: VideoRepository,
    logger: Any,
) -> asyncio.Task:
    """
    Schedule asset generation for a video.

    Raises:
        PlanMissing: If the video or its plan does not exist
    """
    video = await repository.get_video(video_id)
    if video is None or video.video_plan is None:
        raise PlanMissing(f"Video {video_id} has no video plan")

    async def _record_failure(error: BaseException) -> None:
        await repository.update_video(
            video_id,
            asset_status=AssetStatus.FAILED,
            asset_error=f"Asset generation failed: {error}",
        )

    logger.info(f"Scheduling asset generation for {video_id}")
    return launch_in_background(
        orchestrator.generate_all_assets(video_id),
        logger,
        name=f"assets:{video_id}",
        on_failure=_record_failure,
    )


async def start_render(
    video_id: str,
    engine: SceneRenderEngine,
    repository: VideoRepository,
    logger: Any,
) -> asyncio.Task:
    """
    Schedule a render once assets are usable.

    Raises:
        PlanMissing: If the video does not exist
        AssetsNotReady: If asset status is not COMPLETED or PARTIAL
    """
    video = await repository.get_video(video_id)
    if video is None:
        raise PlanMissing(f"Video not found: {video_id}")
    if not is_asset_status_usable(video.asset_status):
        raise AssetsNotReady(
            f"Assets for {video_id} are not ready for rendering (status {video.asset_status.value})"
        )

    logger.info(f"Scheduling render for {video_id}")
    # render_video persists its own failure state
    return launch_in_background(engine.render_video(video_id), logger, name=f"render:{video_id}")
