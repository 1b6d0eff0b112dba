"""Media pipeline orchestrator - video plan -> scene assets -> rendered video."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from media_pipeline.core.config import Settings, settings
from media_pipeline.core.errors import AssetsNotReady, PipelineError, PlanMissing
from media_pipeline.core.logging_config import get_logger, setup_logging
from media_pipeline.models.schemas import (
    AssetGenerationResult,
    GenerationInputs,
    RenderResult,
    VideoPlan,
    VideoRecord,
)
from media_pipeline.services.asset_orchestrator import AssetGenerationOrchestrator
from media_pipeline.services.generation_client import GenerationClient
from media_pipeline.services.media_transform import RESOLUTIONS
from media_pipeline.services.object_storage import ObjectStorage, create_object_storage
from media_pipeline.services.render_engine import SceneRenderEngine
from media_pipeline.storage.repository import VideoRepository
from media_pipeline.utils.error_handler import format_error_message, get_failure_suggestion
from media_pipeline.utils.pipeline_state import is_asset_status_usable


def load_video_plan(plan_path: Path) -> VideoPlan:
    """
    Load a video plan from a JSON file.

    The file holds either a plan object (``{"title": ..., "scenes": [...]}``)
    or a bare list of scenes.

    Args:
        plan_path: Path to the JSON file

    Returns:
        Validated VideoPlan
    """
    with open(plan_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        data = {"scenes": data}
    return VideoPlan.model_validate(data)


async def run_media_pipeline(
    settings: Settings,
    logger: Any,
    plan: Optional[VideoPlan] = None,
    video_id: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    voice: Optional[str] = None,
    title: Optional[str] = None,
    skip_render: bool = False,
    render_only: bool = False,
    storage: Optional[ObjectStorage] = None,
    client: Optional[GenerationClient] = None,
    engine: Optional[SceneRenderEngine] = None,
) -> tuple[str, Optional[AssetGenerationResult], Optional[RenderResult]]:
    """
    Run asset generation and rendering for one video.

    Args:
        settings: App settings
        logger: Logger instance
        plan: Video plan (required unless render_only)
        video_id: Existing or new video identifier
        aspect_ratio: 16:9, 9:16 or 1:1
        voice: Semantic voice key, or 'none'
        title: Video title (defaults to the plan's title)
        skip_render: Stop after asset generation
        render_only: Render an existing video's assets without generating
        storage: Optional object storage (built from settings by default)
        client: Optional generation client
        engine: Optional render engine

    Returns:
        Tuple of (video_id, asset generation result or None, render result or None)
    """
    repository = VideoRepository(settings, logger)
    storage = storage or create_object_storage(settings, logger)
    engine = engine or SceneRenderEngine(settings, logger, repository, storage)

    if render_only:
        if not video_id:
            raise PlanMissing("--render-only requires --video-id")
        video = await repository.get_video(video_id)
        if video is None:
            raise PlanMissing(f"Video not found: {video_id}")
        if not is_asset_status_usable(video.asset_status):
            raise AssetsNotReady(f"Assets for {video_id} are not ready (status {video.asset_status.value})")
        return video_id, None, await engine.render_video(video_id)

    if plan is None:
        raise PlanMissing("A video plan is required")

    record = VideoRecord(
        title=title or plan.title,
        generation_inputs=GenerationInputs(
            aspect_ratio=aspect_ratio or settings.default_aspect_ratio,
            voice=voice or settings.default_voice,
        ),
        video_plan=plan,
    )
    if video_id:
        record.video_id = video_id
    await repository.create_video(record)
    logger.info(f"Created video {record.video_id}: {len(plan.scenes)} scenes")

    orchestrator = AssetGenerationOrchestrator(settings, logger, repository, storage, client)
    assets = await orchestrator.generate_all_assets(record.video_id)

    if skip_render:
        logger.info("Skipping render (--skip-render)")
        return record.video_id, assets, None
    if not is_asset_status_usable(assets.status):
        raise AssetsNotReady(f"Asset generation {assets.status.value}: cannot render {record.video_id}")

    return record.video_id, assets, await engine.render_video(record.video_id)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entrypoint for the media pipeline."""
    parser = argparse.ArgumentParser(
        description="Media Production Pipeline - video plan to rendered video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--plan", type=str, default=None, help="Path to a JSON video plan")
    parser.add_argument("--video-id", type=str, default=None, help="Video identifier (new, or existing with --render-only)")
    parser.add_argument(
        "--aspect-ratio",
        type=str,
        default=None,
        choices=sorted(RESOLUTIONS),
        help=f"Aspect ratio (default: {settings.default_aspect_ratio})",
    )
    parser.add_argument(
        "--voice",
        type=str,
        default=None,
        help=f"Voice key, e.g. neutral_female, or 'none' for no narration (default: {settings.default_voice})",
    )
    parser.add_argument("--title", type=str, default=None, help="Video title (default: the plan's title)")
    parser.add_argument("--skip-render", action="store_true", help="Generate assets only")
    parser.add_argument("--render-only", action="store_true", help="Render an existing video without generating assets")
    parser.add_argument("--log-level", type=str, default=None, help=f"Log level (default: {settings.log_level})")

    args = parser.parse_args(argv)

    if args.skip_render and args.render_only:
        parser.error("--skip-render and --render-only are mutually exclusive")
    if args.render_only and not args.video_id:
        parser.error("--render-only requires --video-id")
    if not args.render_only and not args.plan:
        parser.error("--plan is required unless --render-only is used")

    log_file = Path(settings.log_file) if settings.log_file else None
    setup_logging(log_level=args.log_level or settings.log_level, log_file=log_file)
    logger = get_logger(__name__, video_id=args.video_id or "-")

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} v{settings.app_version}")
    if args.render_only:
        logger.info(f"Mode: RENDER ONLY ({args.video_id})")
    elif args.skip_render:
        logger.info("Mode: ASSETS ONLY")
    else:
        logger.info("Mode: FULL (assets + render)")
    logger.info("=" * 60)

    try:
        plan = load_video_plan(Path(args.plan)) if args.plan and not args.render_only else None
        video_id, assets, render = asyncio.run(
            run_media_pipeline(
                settings,
                logger,
                plan=plan,
                video_id=args.video_id,
                aspect_ratio=args.aspect_ratio,
                voice=args.voice,
                title=args.title,
                skip_render=args.skip_render,
                render_only=args.render_only,
            )
        )
    except (PipelineError, ValidationError, OSError, json.JSONDecodeError) as e:
        logger.error(format_error_message("Media pipeline", e, {"video_id": args.video_id}, get_failure_suggestion(e)))
        return 1

    logger.info("=" * 60)
    logger.info(f"Video: {video_id}")
    if assets is not None:
        logger.info(f"Assets: {assets.status.value} ({len(assets.images)} image records, {len(assets.audio)} audio records)")
    if render is not None:
        logger.info(f"Video URL: {render.video_url}")
        logger.info(f"Thumbnail URL: {render.thumbnail_url}")
        logger.info(f"Duration: {render.duration_seconds}s")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
