"""Scene Render Engine - turns generated scene assets into the final video."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from media_pipeline.core.config import Settings
from media_pipeline.core.errors import NoUsableAssets, PlanMissing, WorkspaceError
from media_pipeline.models.schemas import AssetKind, RenderProgress, RenderResult, RenderStage, VideoStatus
from media_pipeline.services.media_transform import MediaTransformGateway, resolution_for, select_effect
from media_pipeline.services.object_storage import RENDERED_PREFIX, THUMBNAIL_PREFIX, ObjectStorage
from media_pipeline.storage.repository import VideoRepository
from media_pipeline.utils.error_handler import format_error_message, get_failure_suggestion
from media_pipeline.utils.io_utils import download_file_async
from media_pipeline.utils.pipeline_state import scene_progress, stage_progress
from media_pipeline.utils.workspace import RenderWorkspace

Downloader = Callable[[str, Path], Awaitable[Path]]


class SceneRenderEngine:
    """Renders a video's scenes into clips, joins them, thumbnails and publishes the result."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        repository: VideoRepository,
        storage: ObjectStorage,
        transform: Optional[MediaTransformGateway] = None,
        downloader: Optional[Downloader] = None,
    ):
        """
        Initialize the render engine.

        Args:
            settings: Application settings
            logger: Logger instance
            repository: Video repository
            storage: Object storage holding the scene assets
            transform: ffmpeg gateway (built from settings by default)
            downloader: Async ``(url, dest_path) -> dest_path`` (HTTP GET by default)
        """
        self.settings = settings
        self.logger = logger
        self.repository = repository
        self.storage = storage
        self.transform = transform or MediaTransformGateway(settings, logger)
        self.downloader = downloader or self._http_download

    async def _http_download(self, url: str, dest_path: Path) -> Path:
        return await download_file_async(url, dest_path, timeout=self.settings.download_timeout_seconds)

    async def _set_progress(self, video_id: str, progress: RenderProgress, **fields: Any) -> None:
        await self.repository.update_video(video_id, render_progress=progress, **fields)

    async def _download_asset(self, key: str, dest_path: Path) -> Path:
        url = await self.storage.get_download_url(key, self.settings.signed_url_ttl_seconds)
        return await self.downloader(url, dest_path)

    async def render_video(self, video_id: str) -> RenderResult:
        """
        Render, concatenate, thumbnail and upload a video.

        Stages run PREPARING -> RENDERING_SCENES -> CONCATENATING ->
        GENERATING_THUMBNAIL -> UPLOADING -> COMPLETED. Any failure is
        persisted as FAILED and re-raised; the workspace is removed on every
        exit path.

        Args:
            video_id: Video identifier

        Returns:
            RenderResult with public URLs and rounded duration

        Raises:
            PlanMissing: If the video or its plan does not exist
            NoUsableAssets: If there are no usable images, or no scene produced a clip
        """
        video = await self.repository.get_video(video_id)
        if video is None:
            raise PlanMissing(f"Video not found: {video_id}")

        workspace: Optional[RenderWorkspace] = None
        try:
            if video.video_plan is None or not video.video_plan.scenes:
                raise PlanMissing(f"Video {video_id} has no video plan")

            images = await self.repository.usable_asset_records(video_id, AssetKind.IMAGE, video.asset_run_id)
            if not images:
                raise NoUsableAssets(f"No usable images for video {video_id}")
            audio = await self.repository.usable_asset_records(video_id, AssetKind.AUDIO, video.asset_run_id)

            scenes = video.video_plan.scenes
            total = len(scenes)
            resolution = resolution_for(video.generation_inputs.aspect_ratio or self.settings.default_aspect_ratio)

            self.logger.info(f"Starting render of {video_id}: {total} scenes, {len(images)} images, {len(audio)} audio")
            await self._set_progress(video_id, stage_progress(RenderStage.PREPARING), status=VideoStatus.GENERATING, error_message=None)

            workspace = RenderWorkspace.create(video_id, self.logger, self.settings.render_temp_dir)

            # Scenes render one at a time, in plan order
            clip_paths: list[Path] = []
            for index, scene in enumerate(scenes):
                await self._set_progress(video_id, scene_progress(scene.scene_number, index, total))

                image = images.get(scene.scene_number)
                narration = audio.get(scene.scene_number)
                if image is None or narration is None:
                    missing = "image" if image is None else "audio"
                    self.logger.warning(f"Skipping scene {scene.scene_number}: no usable {missing}")
                    await self._set_progress(video_id, scene_progress(scene.scene_number, index + 1, total))
                    continue

                image_path = await self._download_asset(image.storage_key, workspace.image_path(scene.scene_number))
                audio_path = await self._download_asset(narration.storage_key, workspace.audio_path(scene.scene_number))

                clip_path = await self.transform.render_scene_clip(
                    image_path,
                    audio_path,
                    workspace.clip_path(scene.scene_number),
                    resolution,
                    select_effect(index),
                )
                clip_seconds = await self.transform.probe_duration(clip_path)
                self.logger.info(f"Scene {scene.scene_number} rendered ({clip_seconds:.1f}s)")
                clip_paths.append(clip_path)

                await self._set_progress(video_id, scene_progress(scene.scene_number, index + 1, total))

            if not clip_paths:
                raise NoUsableAssets(f"No scene of video {video_id} had both a usable image and audio")

            await self._set_progress(video_id, stage_progress(RenderStage.CONCATENATING))
            final_path = await self.transform.concatenate_clips(clip_paths, workspace.final_video_path)

            await self._set_progress(video_id, stage_progress(RenderStage.GENERATING_THUMBNAIL))
            thumbnail_path = await self.transform.extract_thumbnail(final_path, workspace.thumbnail_path)

            await self._set_progress(video_id, stage_progress(RenderStage.UPLOADING))
            video_key = self.storage.generate_key(RENDERED_PREFIX, video_id, "mp4")
            thumbnail_key = self.storage.generate_key(THUMBNAIL_PREFIX, video_id, "jpg")
            video_bytes = await asyncio.to_thread(final_path.read_bytes)
            thumbnail_bytes = await asyncio.to_thread(thumbnail_path.read_bytes)
            metadata = {"video_id": video_id}
            video_url = await self.storage.upload(video_bytes, video_key, "video/mp4", metadata)
            thumbnail_url = await self.storage.upload(thumbnail_bytes, thumbnail_key, "image/jpeg", metadata)
            duration = round(await self.transform.probe_duration(final_path))

            await self._set_progress(
                video_id,
                stage_progress(RenderStage.COMPLETED),
                status=VideoStatus.GENERATED,
                video_url=video_url,
                video_storage_key=video_key,
                thumbnail_url=thumbnail_url,
                thumbnail_storage_key=thumbnail_key,
                duration_seconds=duration,
                error_message=None,
            )
            self.logger.info(f"Render of {video_id} complete: {len(clip_paths)}/{total} scenes, {duration}s")
            return RenderResult(video_url=video_url, thumbnail_url=thumbnail_url, duration_seconds=duration)

        except Exception as e:
            self.logger.error(format_error_message("Rendering video", e, {"video_id": video_id}, get_failure_suggestion(e)))
            await self._mark_failed(video_id, e)
            raise
        finally:
            if workspace is not None:
                try:
                    workspace.cleanup()
                except WorkspaceError as e:
                    self.logger.error(str(e))

    async def _mark_failed(self, video_id: str, error: Exception) -> None:
        message = str(error)
        try:
            await self._set_progress(
                video_id,
                stage_progress(RenderStage.FAILED, error=message),
                status=VideoStatus.FAILED,
                error_message=message,
            )
        except Exception as e:
            self.logger.error(f"Could not persist render failure for {video_id}: {e}")
