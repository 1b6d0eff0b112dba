"""Storage repository for videos and their generated asset records."""

import asyncio
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import TypeAdapter

from media_pipeline.core.config import Settings
from media_pipeline.core.errors import PlanMissing
from media_pipeline.models.schemas import AssetKind, AssetRecord, VideoRecord

_ASSET_RECORD_ADAPTER = TypeAdapter(AssetRecord)


class VideoRepository:
    """
    JSON-file repository for video documents.

    Each video lives in ``<repository_path>/<video_id>.json``; its asset
    records are appended to ``<repository_path>/<video_id>.assets.jsonl``.
    Writes are serialized by a lock and land atomically via a temp file.
    """

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the repository.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.storage_path = Path(settings.repository_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def lock(self) -> asyncio.Lock:
        """Write lock for the running event loop."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _video_path(self, video_id: str) -> Path:
        return self.storage_path / f"{video_id}.json"

    def _assets_path(self, video_id: str) -> Path:
        return self.storage_path / f"{video_id}.assets.jsonl"

    # ------------------------------------------------------------------
    # Video documents
    # ------------------------------------------------------------------

    async def create_video(self, video: VideoRecord) -> VideoRecord:
        """
        Save a new video document.

        Args:
            video: Video record to save

        Returns:
            The saved record
        """
        self.logger.info(f"Saving video: {video.video_id}")
        async with self.lock:
            await asyncio.to_thread(self._write_video, video)
        return video

    async def get_video(self, video_id: str) -> Optional[VideoRecord]:
        """
        Load a video document.

        Args:
            video_id: Video identifier

        Returns:
            Video record if found, None otherwise
        """
        return await asyncio.to_thread(self._read_video, video_id)

    async def update_video(self, video_id: str, **fields: Any) -> VideoRecord:
        """
        Apply a partial update to a video document.

        Args:
            video_id: Video identifier
            **fields: VideoRecord fields to overwrite

        Returns:
            Updated record

        Raises:
            PlanMissing: If the video does not exist
        """
        async with self.lock:
            current = await asyncio.to_thread(self._read_video, video_id)
            if current is None:
                raise PlanMissing(f"Video not found: {video_id}")
            updated = current.model_copy(update={**fields, "updated_at": datetime.now()})
            # model_copy skips validation; round-trip so nested dicts become models
            updated = VideoRecord.model_validate(updated.model_dump())
            await asyncio.to_thread(self._write_video, updated)
        return updated

    async def list_videos(self) -> list[str]:
        """
        List all video IDs.

        Returns:
            List of video IDs
        """
        video_ids = sorted(f.stem for f in self.storage_path.glob("*.json"))
        self.logger.info(f"Found {len(video_ids)} videos")
        return video_ids

    def _read_video(self, video_id: str) -> Optional[VideoRecord]:
        file_path = self._video_path(video_id)
        if not file_path.exists():
            self.logger.warning(f"Video not found: {video_id}")
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return VideoRecord.model_validate(json.load(f))

    def _write_video(self, video: VideoRecord) -> None:
        file_path = self._video_path(video.video_id)
        tmp_path = file_path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(video.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, file_path)

    # ------------------------------------------------------------------
    # Asset records
    # ------------------------------------------------------------------

    async def save_asset_record(self, record: AssetRecord) -> AssetRecord:
        """Append one asset record (success or failure) to the video's asset log."""
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        async with self.lock:
            await asyncio.to_thread(self._append_line, self._assets_path(record.video_id), line)
        status = "failed" if record.failed else "saved"
        self.logger.debug(f"Asset record {status}: {record.kind} scene {record.scene_number}")
        return record

    async def list_asset_records(self, video_id: str, kind: Optional[AssetKind] = None) -> list[AssetRecord]:
        """
        Load a video's asset records in insertion order.

        Args:
            video_id: Video identifier
            kind: Optional filter (image or audio)

        Returns:
            List of asset records
        """
        records = await asyncio.to_thread(self._read_asset_records, video_id)
        if kind is not None:
            records = [r for r in records if r.kind == AssetKind(kind).value]
        return records

    async def usable_asset_records(
        self, video_id: str, kind: AssetKind, run_id: Optional[str] = None
    ) -> dict[int, AssetRecord]:
        """
        Latest usable record per scene number for one asset kind.

        Args:
            video_id: Video identifier
            kind: Image or audio
            run_id: Only consider records of this generation run (all runs when None)

        Returns:
            Mapping of scene number to record
        """
        usable: dict[int, AssetRecord] = {}
        for record in await self.list_asset_records(video_id, kind):
            if run_id is not None and record.run_id != run_id:
                continue
            if record.usable:
                usable[record.scene_number] = record
        return usable

    async def delete_asset_records(self, video_id: str) -> int:
        """
        Remove every asset record of a video.

        Returns:
            Number of records removed
        """
        async with self.lock:
            records = await asyncio.to_thread(self._read_asset_records, video_id)
            path = self._assets_path(video_id)
            if path.exists():
                await asyncio.to_thread(path.unlink)
        self.logger.info(f"Deleted {len(records)} asset records for {video_id}")
        return len(records)

    def _read_asset_records(self, video_id: str) -> list[AssetRecord]:
        path = self._assets_path(video_id)
        if not path.exists():
            return []
        records = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    records.append(_ASSET_RECORD_ADAPTER.validate_json(line))
        return records

    @staticmethod
    def _append_line(path: Path, line: str) -> None:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
