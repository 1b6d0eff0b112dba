"""Tests for the scene render engine."""

import asyncio
from pathlib import Path

import pytest

from conftest import make_png
from media_pipeline.core.errors import NoUsableAssets, PlanMissing, StorageError, TransformFailed
from media_pipeline.models.schemas import (
    AudioAssetRecord,
    ImageAssetRecord,
    RenderStage,
    VideoRecord,
    VideoStatus,
)
from media_pipeline.services.object_storage import LocalObjectStorage
from media_pipeline.services.render_engine import SceneRenderEngine


class FakeTransform:
    """Stand-in for the ffmpeg gateway that writes small marker files."""

    def __init__(self, fail_at=None):
        self.fail_at = fail_at
        self.rendered = []

    def _maybe_fail(self, stage):
        if self.fail_at == stage:
            raise TransformFailed("ffmpeg", 1, f"injected failure at {stage}")

    async def render_scene_clip(self, image_path, audio_path, out_path, resolution, effect):
        self._maybe_fail("render")
        assert Path(image_path).exists() and Path(audio_path).exists()
        self.rendered.append((Path(out_path).name, resolution, effect))
        Path(out_path).write_bytes(f"clip:{Path(out_path).stem}".encode())
        return Path(out_path)

    async def probe_duration(self, path):
        return 4.4

    async def concatenate_clips(self, clip_paths, out_path):
        self._maybe_fail("concat")
        Path(out_path).write_bytes(b"|".join(Path(p).read_bytes() for p in clip_paths))
        return Path(out_path)

    async def extract_thumbnail(self, video_path, out_path):
        self._maybe_fail("thumbnail")
        Path(out_path).write_bytes(b"jpeg")
        return Path(out_path)


class FailingUploadStorage(LocalObjectStorage):
    """Local storage whose uploads of rendered video fail."""

    async def upload(self, data, key, content_type, metadata=None):
        if content_type == "video/mp4":
            raise StorageError("injected upload failure")
        return await super().upload(data, key, content_type, metadata)


async def seed_assets(repository, storage, video: VideoRecord, with_audio=(1, 3)):
    """Store a usable image for every scene and audio for the given scenes."""
    await repository.create_video(video)
    for scene in video.video_plan.scenes:
        key = storage.generate_key("videos/images", video.video_id, "png")
        url = await storage.upload(make_png(), key, "image/png")
        await repository.save_asset_record(
            ImageAssetRecord(
                video_id=video.video_id,
                scene_number=scene.scene_number,
                source_prompt=scene.image_prompt,
                storage_key=key,
                storage_url=url,
            )
        )
        if scene.scene_number in with_audio:
            key = storage.generate_key("videos/audio", video.video_id, "mp3")
            url = await storage.upload(b"ID3-audio", key, "audio/mpeg")
            await repository.save_asset_record(
                AudioAssetRecord(
                    video_id=video.video_id,
                    scene_number=scene.scene_number,
                    source_prompt=scene.narration,
                    storage_key=key,
                    storage_url=url,
                )
            )


def workspaces(settings):
    root = Path(settings.render_temp_dir)
    return list(root.glob("render_*")) if root.exists() else []


def test_render_video_success(settings, logger, repository, storage, sample_video):
    """Test a full render: scenes with both assets are rendered in plan order and published."""
    transform = FakeTransform()
    engine = SceneRenderEngine(settings, logger, repository, storage, transform=transform)
    percents = []
    original_update = repository.update_video

    async def recording_update(video_id, **fields):
        if "render_progress" in fields:
            percents.append((fields["render_progress"].stage, fields["render_progress"].progress_percent))
        return await original_update(video_id, **fields)

    repository.update_video = recording_update

    async def run():
        await seed_assets(repository, storage, sample_video)
        return await engine.render_video(sample_video.video_id)

    result = asyncio.run(run())

    # Scene 2 has no audio and is skipped
    assert [name for name, _, _ in transform.rendered] == ["scene_1.mp4", "scene_3.mp4"]
    assert transform.rendered[0][1] == (1920, 1080)
    assert result.duration_seconds == 4
    assert result.video_url.startswith("file://")
    assert result.thumbnail_url.startswith("file://")

    stored = asyncio.run(repository.get_video(sample_video.video_id))
    assert stored.status == VideoStatus.GENERATED
    assert stored.render_progress.stage == RenderStage.COMPLETED
    assert stored.render_progress.progress_percent == 100
    assert stored.video_storage_key.startswith(f"videos/rendered/{sample_video.video_id}/")
    assert stored.video_storage_key.endswith(".mp4")
    assert stored.thumbnail_storage_key.startswith(f"videos/thumbnails/{sample_video.video_id}/")
    assert (storage.root / stored.video_storage_key).read_bytes() == b"clip:scene_1|clip:scene_3"

    values = [percent for _, percent in percents]
    assert values == sorted(values)
    assert values[-4:] == [85, 90, 95, 100]
    assert percents[0] == (RenderStage.PREPARING, 0)
    assert (RenderStage.RENDERING_SCENES, 80) in percents

    assert workspaces(settings) == []


def test_render_without_usable_images_creates_no_workspace(settings, logger, repository, storage, sample_video):
    """Test NoUsableAssets is raised before any workspace exists."""
    engine = SceneRenderEngine(settings, logger, repository, storage, transform=FakeTransform())

    async def run():
        await repository.create_video(sample_video)
        await engine.render_video(sample_video.video_id)

    with pytest.raises(NoUsableAssets):
        asyncio.run(run())

    assert workspaces(settings) == []
    assert not Path(settings.render_temp_dir).exists()
    stored = asyncio.run(repository.get_video(sample_video.video_id))
    assert stored.status == VideoStatus.FAILED


def test_render_with_no_renderable_scene_fails(settings, logger, repository, storage, sample_video):
    """Test images without any audio produce no clips and fail."""
    engine = SceneRenderEngine(settings, logger, repository, storage, transform=FakeTransform())

    async def run():
        await seed_assets(repository, storage, sample_video, with_audio=())
        await engine.render_video(sample_video.video_id)

    with pytest.raises(NoUsableAssets):
        asyncio.run(run())
    assert workspaces(settings) == []


def test_render_unknown_video_raises_plan_missing(settings, logger, repository, storage):
    """Test rendering a video that does not exist."""
    engine = SceneRenderEngine(settings, logger, repository, storage, transform=FakeTransform())
    with pytest.raises(PlanMissing):
        asyncio.run(engine.render_video("video_missing"))


async def failing_download(url, dest_path):
    raise StorageError("injected download failure")


@pytest.mark.parametrize("stage", ["download", "render", "concat", "thumbnail", "upload"])
def test_workspace_removed_after_failure_at_each_stage(settings, logger, repository, sample_video, stage):
    """Test failures at every stage persist FAILED, re-raise and remove the workspace."""
    storage = FailingUploadStorage(settings, logger) if stage == "upload" else LocalObjectStorage(settings, logger)
    transform = FakeTransform(fail_at=stage)
    downloader = failing_download if stage == "download" else None
    engine = SceneRenderEngine(settings, logger, repository, storage, transform=transform, downloader=downloader)

    async def run():
        await seed_assets(repository, storage, sample_video)
        await engine.render_video(sample_video.video_id)

    with pytest.raises((TransformFailed, StorageError)) as exc_info:
        asyncio.run(run())

    assert workspaces(settings) == []
    stored = asyncio.run(repository.get_video(sample_video.video_id))
    assert stored.status == VideoStatus.FAILED
    assert stored.error_message == str(exc_info.value)
    assert stored.render_progress.stage == RenderStage.FAILED
    assert stored.render_progress.error == str(exc_info.value)


def test_rerender_after_failure_succeeds(settings, logger, repository, storage, sample_video):
    """Test a retry after a failed attempt starts fresh and completes."""
    failing = SceneRenderEngine(settings, logger, repository, storage, transform=FakeTransform(fail_at="concat"))
    working = SceneRenderEngine(settings, logger, repository, storage, transform=FakeTransform())

    async def run():
        await seed_assets(repository, storage, sample_video)
        with pytest.raises(TransformFailed):
            await failing.render_video(sample_video.video_id)
        return await working.render_video(sample_video.video_id)

    result = asyncio.run(run())

    assert result.duration_seconds == 4
    stored = asyncio.run(repository.get_video(sample_video.video_id))
    assert stored.status == VideoStatus.GENERATED
    assert stored.error_message is None
    assert workspaces(settings) == []


def test_render_uses_only_latest_generation_run(settings, logger, repository, storage, sample_video):
    """Test an older run's image is not rendered when the latest run failed that scene."""
    transform = FakeTransform()
    engine = SceneRenderEngine(settings, logger, repository, storage, transform=transform)
    video = sample_video.model_copy(update={"asset_run_id": "run2"})

    async def save(record_cls, scene_number, run_id, error=None):
        key = storage.generate_key("videos/assets", video.video_id, "bin")
        url = "" if error else await storage.upload(b"data", key, "application/octet-stream")
        await repository.save_asset_record(
            record_cls(
                video_id=video.video_id,
                scene_number=scene_number,
                run_id=run_id,
                source_prompt="prompt",
                storage_key="" if error else key,
                storage_url=url,
                error_message=error,
            )
        )

    async def run():
        await repository.create_video(video)
        for scene_number in (1, 3):
            await save(ImageAssetRecord, scene_number, "run1")
            await save(AudioAssetRecord, scene_number, "run1")
        await save(ImageAssetRecord, 1, "run2", error="bad key")
        await save(AudioAssetRecord, 1, "run2")
        await save(ImageAssetRecord, 3, "run2")
        await save(AudioAssetRecord, 3, "run2")
        return await engine.render_video(video.video_id)

    asyncio.run(run())

    assert [name for name, _, _ in transform.rendered] == ["scene_3.mp4"]
