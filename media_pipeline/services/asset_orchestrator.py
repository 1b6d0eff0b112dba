"""Asset Generation Orchestrator - parallel per-scene image and narration generation."""

import asyncio
import uuid
from typing import Any, Optional

from media_pipeline.core.config import Settings
from media_pipeline.core.errors import PlanMissing, StorageError
from media_pipeline.models.schemas import (
    AssetError,
    AssetGenerationResult,
    AssetKind,
    AssetProgress,
    AssetStatus,
    AudioAssetRecord,
    ImageAssetRecord,
    Scene,
)
from media_pipeline.services.generation_client import (
    GenerationClient,
    image_size_for,
    is_voice_disabled,
    resolve_voice,
)
from media_pipeline.services.object_storage import AUDIO_PREFIX, IMAGE_PREFIX, ObjectStorage
from media_pipeline.storage.repository import VideoRepository
from media_pipeline.utils.error_handler import format_error_message, get_failure_suggestion
from media_pipeline.utils.io_utils import extension_for
from media_pipeline.utils.pipeline_state import (
    aggregate_status,
    format_asset_error,
    mark_audio_skipped,
    new_asset_progress,
    record_audio_result,
    record_image_result,
    snapshot,
)


class AssetGenerationOrchestrator:
    """Generates, stores and records every scene image and narration of a video."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        repository: VideoRepository,
        storage: ObjectStorage,
        client: Optional[GenerationClient] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Application settings
            logger: Logger instance
            repository: Video repository
            storage: Object storage for generated media
            client: Generation client (built from settings by default)
        """
        self.settings = settings
        self.logger = logger
        self.repository = repository
        self.storage = storage
        self.client = client or GenerationClient(settings, logger)

    async def generate_all_assets(self, video_id: str) -> AssetGenerationResult:
        """
        Generate images and narration for every scene of a video.

        Image tasks and audio tasks run as two concurrent batches. A failing
        scene is recorded and never cancels its siblings. Progress is
        persisted after every finished task.

        Args:
            video_id: Video identifier

        Returns:
            AssetGenerationResult with records, per-scene errors and aggregate status

        Raises:
            PlanMissing: If the video or its plan does not exist
            Exception: Whatever a failed record or progress write raised, after
                the run has been persisted as FAILED
        """
        video = await self.repository.get_video(video_id)
        if video is None:
            raise PlanMissing(f"Video not found: {video_id}")
        if video.video_plan is None or not video.video_plan.scenes:
            raise PlanMissing(f"Video {video_id} has no video plan")

        scenes = video.video_plan.scenes
        aspect_ratio = video.generation_inputs.aspect_ratio or self.settings.default_aspect_ratio
        voice_key = video.generation_inputs.voice or self.settings.default_voice
        size = image_size_for(aspect_ratio)
        run_id = uuid.uuid4().hex

        progress = new_asset_progress(len(scenes))
        errors: list[AssetError] = []

        self.logger.info(f"Generating assets for {video_id}: {len(scenes)} scenes, size={size}, voice={voice_key}")
        await self.repository.update_video(
            video_id,
            asset_status=AssetStatus.GENERATING,
            asset_run_id=run_id,
            asset_progress=snapshot(progress),
            asset_error=None,
        )

        audio: list = []
        try:
            if is_voice_disabled(voice_key):
                self.logger.info("Voice disabled, skipping narration audio")
                mark_audio_skipped(progress)
                await self._persist_progress(video_id, progress)
                images = await asyncio.gather(
                    *(self._generate_scene_image(video_id, run_id, scene, size, progress, errors) for scene in scenes),
                    return_exceptions=True,
                )
            else:
                voice_id = resolve_voice(voice_key)
                images, audio = await asyncio.gather(
                    asyncio.gather(
                        *(self._generate_scene_image(video_id, run_id, scene, size, progress, errors) for scene in scenes),
                        return_exceptions=True,
                    ),
                    asyncio.gather(
                        *(self._generate_scene_audio(video_id, run_id, scene, voice_id, progress, errors) for scene in scenes),
                        return_exceptions=True,
                    ),
                )
            # Scene failures are recorded inside the tasks; anything raised here is a persistence failure
            for outcome in [*images, *audio]:
                if isinstance(outcome, BaseException):
                    raise outcome
        except Exception as e:
            await self._mark_failed(video_id, progress, e)
            raise

        status = aggregate_status(progress)
        errors.sort(key=lambda e: (e.scene_number, e.kind != AssetKind.IMAGE))
        asset_error = format_asset_error(status, errors)

        await self.repository.update_video(
            video_id,
            asset_status=status,
            asset_progress=snapshot(progress),
            asset_error=asset_error,
        )

        self.logger.info(
            f"Asset generation for {video_id} finished with {status.value}: "
            f"images {progress.images_completed}/{progress.total_scenes} ok, {progress.images_failed} failed; "
            f"audio {progress.audio_completed}/{progress.total_scenes} ok, {progress.audio_failed} failed"
        )
        if asset_error:
            self.logger.warning(asset_error)

        return AssetGenerationResult(
            images=list(images),
            audio=[record for record in audio if record is not None],
            errors=errors,
            status=status,
            progress=snapshot(progress),
        )

    async def _persist_progress(self, video_id: str, progress: AssetProgress) -> None:
        await self.repository.update_video(video_id, asset_progress=snapshot(progress))

    async def _mark_failed(self, video_id: str, progress: AssetProgress, error: Exception) -> None:
        """Persist a FAILED terminal state for a run that could not finish."""
        self.logger.error(format_error_message("Asset generation", error, {"video_id": video_id}, get_failure_suggestion(error)))
        try:
            await self.repository.update_video(
                video_id,
                asset_status=AssetStatus.FAILED,
                asset_progress=snapshot(progress),
                asset_error=f"Asset generation failed: {error}",
            )
        except Exception as e:
            self.logger.error(f"Could not record asset failure for {video_id}: {e}")

    async def _generate_scene_image(
        self,
        video_id: str,
        run_id: str,
        scene: Scene,
        size: str,
        progress: AssetProgress,
        errors: list[AssetError],
    ) -> ImageAssetRecord:
        try:
            generated = await self.client.generate_image(scene.image_prompt, size)
            key = self.storage.generate_key(IMAGE_PREFIX, video_id, extension_for(generated.mime_type))
            url = await self.storage.upload(
                generated.data,
                key,
                generated.mime_type,
                {"video_id": video_id, "scene_number": scene.scene_number},
            )
            record = ImageAssetRecord(
                video_id=video_id,
                scene_number=scene.scene_number,
                run_id=run_id,
                source_prompt=generated.used_prompt,
                original_prompt=scene.image_prompt,
                revised_prompt=generated.revised_prompt,
                sanitization_level=generated.sanitization_level,
                storage_key=key,
                storage_url=url,
                byte_size=len(generated.data),
                mime_type=generated.mime_type,
                model_identifier=generated.model_id,
                width=generated.width,
                height=generated.height,
            )
            self.logger.info(f"Scene {scene.scene_number} image ready (sanitization level {generated.sanitization_level})")
        except Exception as e:
            self.logger.error(
                format_error_message(
                    "Generating image", e, {"video_id": video_id, "scene": scene.scene_number}, get_failure_suggestion(e)
                )
            )
            record = ImageAssetRecord(
                video_id=video_id,
                scene_number=scene.scene_number,
                run_id=run_id,
                source_prompt=scene.image_prompt,
                original_prompt=scene.image_prompt,
                model_identifier=self.settings.image_model,
                error_message=str(e),
            )
            errors.append(AssetError(scene_number=scene.scene_number, kind=AssetKind.IMAGE, error=str(e)))

        await self.repository.save_asset_record(record)
        record_image_result(progress, not record.failed)
        await self._persist_progress(video_id, progress)
        return record

    async def _generate_scene_audio(
        self,
        video_id: str,
        run_id: str,
        scene: Scene,
        voice_id: str,
        progress: AssetProgress,
        errors: list[AssetError],
    ) -> Optional[AudioAssetRecord]:
        if not scene.narration.strip():
            self.logger.debug(f"Scene {scene.scene_number} has no narration, no audio needed")
            record_audio_result(progress, True)
            await self._persist_progress(video_id, progress)
            return None

        try:
            generated = await self.client.generate_speech(scene.narration, voice_id)
            key = self.storage.generate_key(AUDIO_PREFIX, video_id, extension_for(generated.mime_type))
            url = await self.storage.upload(
                generated.data,
                key,
                generated.mime_type,
                {"video_id": video_id, "scene_number": scene.scene_number},
            )
            record = AudioAssetRecord(
                video_id=video_id,
                scene_number=scene.scene_number,
                run_id=run_id,
                source_prompt=scene.narration,
                storage_key=key,
                storage_url=url,
                byte_size=len(generated.data),
                mime_type=generated.mime_type,
                model_identifier=generated.model_id,
                voice=generated.voice,
            )
            self.logger.info(f"Scene {scene.scene_number} audio ready ({len(generated.data)} bytes)")
        except Exception as e:
            self.logger.error(
                format_error_message(
                    "Generating audio", e, {"video_id": video_id, "scene": scene.scene_number}, get_failure_suggestion(e)
                )
            )
            record = AudioAssetRecord(
                video_id=video_id,
                scene_number=scene.scene_number,
                run_id=run_id,
                source_prompt=scene.narration,
                model_identifier=self.settings.tts_model,
                voice=voice_id,
                error_message=str(e),
            )
            errors.append(AssetError(scene_number=scene.scene_number, kind=AssetKind.AUDIO, error=str(e)))

        await self.repository.save_asset_record(record)
        record_audio_result(progress, not record.failed)
        await self._persist_progress(video_id, progress)
        return record

    async def delete_video_assets(self, video_id: str) -> int:
        """
        Remove a video's generated assets from storage, then their records.

        Returns:
            Number of storage objects deleted
        """
        records = await self.repository.list_asset_records(video_id)
        keys = [record.storage_key for record in records if record.storage_key]
        if keys:
            await self.storage.delete(keys)
        await self.repository.delete_asset_records(video_id)
        self.logger.info(f"Deleted {len(keys)} assets of {video_id}")
        return len(keys)

    async def asset_download_urls(self, video_id: str, ttl_seconds: Optional[int] = None) -> dict[str, Optional[str]]:
        """
        Signed download URLs for a video's usable assets and rendered outputs.

        Args:
            video_id: Video identifier
            ttl_seconds: URL lifetime (``signed_url_ttl_seconds`` by default)

        Returns:
            Mapping of storage key to URL; None where signing failed
        """
        ttl = ttl_seconds or self.settings.signed_url_ttl_seconds
        video = await self.repository.get_video(video_id)
        run_id = video.asset_run_id if video is not None else None
        keys = [
            record.storage_key
            for record in await self.repository.list_asset_records(video_id)
            if record.usable and (run_id is None or record.run_id == run_id)
        ]
        if video is not None:
            keys.extend(k for k in (video.video_storage_key, video.thumbnail_storage_key) if k)

        urls: dict[str, Optional[str]] = {}
        for key in keys:
            try:
                urls[key] = await self.storage.get_download_url(key, ttl)
            except StorageError as e:
                self.logger.warning(f"Could not sign download URL for {key}: {e}")
                urls[key] = None
        return urls
