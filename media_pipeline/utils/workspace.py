"""Scratch directories for render attempts."""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

from media_pipeline.core.errors import WorkspaceError


class RenderWorkspace:
    """
    A private directory holding one render attempt's downloads and outputs.

    Each attempt gets a fresh directory; nothing in it outlives the attempt.
    """

    def __init__(self, path: Path, logger: Any):
        self.path = path
        self.logger = logger

    @classmethod
    def create(cls, video_id: str, logger: Any, parent_dir: Optional[str] = None) -> "RenderWorkspace":
        """
        Make a new unique workspace directory.

        Args:
            video_id: Video being rendered (used in the directory name)
            logger: Logger instance
            parent_dir: Parent directory (system temp dir when None)

        Raises:
            WorkspaceError: If the directory cannot be created
        """
        try:
            if parent_dir:
                Path(parent_dir).mkdir(parents=True, exist_ok=True)
            path = Path(tempfile.mkdtemp(prefix=f"render_{video_id}_", dir=parent_dir))
        except OSError as e:
            raise WorkspaceError(f"Could not create render workspace: {e}") from e
        logger.debug(f"Created render workspace {path}")
        return cls(path, logger)

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def image_path(self, scene_number: int) -> Path:
        return self.path / f"scene_{scene_number}_image.png"

    def audio_path(self, scene_number: int) -> Path:
        return self.path / f"scene_{scene_number}_audio.mp3"

    def clip_path(self, scene_number: int) -> Path:
        return self.path / f"scene_{scene_number}.mp4"

    @property
    def final_video_path(self) -> Path:
        return self.path / "final.mp4"

    @property
    def thumbnail_path(self) -> Path:
        return self.path / "thumbnail.jpg"

    def cleanup(self) -> None:
        """Delete the workspace and everything in it; a missing directory is fine."""
        if not self.path.exists():
            return
        try:
            shutil.rmtree(self.path)
        except OSError as e:
            raise WorkspaceError(f"Could not remove render workspace {self.path}: {e}") from e
        self.logger.debug(f"Removed render workspace {self.path}")
