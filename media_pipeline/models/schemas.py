"""Pydantic models and schemas for the media production pipeline."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _new_id() -> str:
    return uuid.uuid4().hex


# ============================================================================
# Enums
# ============================================================================


class VideoStatus(str, Enum):
    """Lifecycle status of a video as seen by the rendering pipeline."""

    DRAFT = "DRAFT"
    GENERATING = "GENERATING"
    GENERATED = "GENERATED"
    FAILED = "FAILED"


class AssetStatus(str, Enum):
    """Run-level status of asset generation."""

    PENDING = "PENDING"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class RenderStage(str, Enum):
    """Stages of a render attempt, in order."""

    PREPARING = "PREPARING"
    RENDERING_SCENES = "RENDERING_SCENES"
    CONCATENATING = "CONCATENATING"
    GENERATING_THUMBNAIL = "GENERATING_THUMBNAIL"
    UPLOADING = "UPLOADING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AssetKind(str, Enum):
    """Kind of generated asset."""

    IMAGE = "image"
    AUDIO = "audio"


# ============================================================================
# Video Plan Models
# ============================================================================


class Scene(BaseModel):
    """One unit of a video plan."""

    model_config = ConfigDict(frozen=True)

    scene_number: int = Field(..., ge=1, description="Scene number (unique, 1-based, not necessarily contiguous)")
    image_prompt: str = Field(..., description="Description of the still image for this scene")
    narration: str = Field(default="", description="Narration script (may be empty)")


class VideoPlan(BaseModel):
    """Ordered list of scenes produced by the planning collaborator."""

    model_config = ConfigDict(frozen=True)

    title: Optional[str] = Field(default=None, description="Video title")
    description: Optional[str] = Field(default=None, description="Short description")
    scenes: tuple[Scene, ...] = Field(..., description="Scenes in playback order")

    @field_validator("scenes")
    @classmethod
    def validate_unique_scene_numbers(cls, v: tuple[Scene, ...]) -> tuple[Scene, ...]:
        """Scene numbers must be unique within a plan."""
        numbers = [scene.scene_number for scene in v]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"scene numbers must be unique, got {numbers}")
        return v


class GenerationInputs(BaseModel):
    """User-chosen generation parameters stored with a video."""

    aspect_ratio: str = Field(default="16:9", description="Aspect ratio: 16:9, 9:16 or 1:1")
    voice: str = Field(default="neutral_male", description="Semantic voice key, or 'none' for no narration audio")


# ============================================================================
# Asset Records
# ============================================================================


class AssetRecordBase(BaseModel):
    """Persisted result (success or failure) of generating one scene asset."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="Record identifier")
    video_id: str = Field(..., description="Owning video")
    scene_number: int = Field(..., description="Scene this asset belongs to")
    run_id: Optional[str] = Field(default=None, description="Asset generation run that produced this record")
    source_prompt: str = Field(..., description="Prompt or narration text actually sent to the provider")
    storage_key: str = Field(default="", description="Object storage key (empty on failure)")
    storage_url: str = Field(default="", description="Object storage URL (empty on failure)")
    byte_size: Optional[int] = Field(default=None, description="Size of the stored object in bytes")
    mime_type: Optional[str] = Field(default=None, description="MIME type of the stored object")
    model_identifier: Optional[str] = Field(default=None, description="Model that produced the asset")
    error_message: Optional[str] = Field(default=None, description="Failure reason; set only on failed records")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")

    @property
    def failed(self) -> bool:
        return bool(self.error_message)

    @property
    def usable(self) -> bool:
        """A record is usable when it has a storage key and no error."""
        return bool(self.storage_key) and not self.error_message


class ImageAssetRecord(AssetRecordBase):
    """Generated still image for one scene."""

    kind: Literal["image"] = "image"
    original_prompt: Optional[str] = Field(default=None, description="Prompt from the video plan")
    revised_prompt: Optional[str] = Field(default=None, description="Prompt as rewritten by the provider")
    sanitization_level: int = Field(default=0, ge=0, le=3, description="Content-filter sanitization level used")
    width: Optional[int] = Field(default=None, description="Image width in pixels")
    height: Optional[int] = Field(default=None, description="Image height in pixels")


class AudioAssetRecord(AssetRecordBase):
    """Synthesized narration for one scene."""

    kind: Literal["audio"] = "audio"
    voice: Optional[str] = Field(default=None, description="Provider voice identifier")


AssetRecord = Annotated[Union[ImageAssetRecord, AudioAssetRecord], Field(discriminator="kind")]


# ============================================================================
# Progress Models
# ============================================================================


class AssetProgress(BaseModel):
    """Counters for one asset generation run."""

    total_scenes: int = Field(..., ge=0, description="Scenes in the plan")
    images_completed: int = Field(default=0, ge=0)
    images_failed: int = Field(default=0, ge=0)
    audio_completed: int = Field(default=0, ge=0)
    audio_failed: int = Field(default=0, ge=0)


class RenderProgress(BaseModel):
    """Progress of one render attempt."""

    stage: RenderStage = Field(..., description="Current stage")
    current_scene: Optional[int] = Field(default=None, description="Scene number being rendered")
    total_scenes: Optional[int] = Field(default=None, description="Scenes in the plan")
    progress_percent: int = Field(default=0, ge=0, le=100, description="Overall progress (0-100)")
    error: Optional[str] = Field(default=None, description="Error message when stage is FAILED")


# ============================================================================
# Persistence Document
# ============================================================================


class VideoRecord(BaseModel):
    """Persisted state of a video across asset generation and rendering."""

    video_id: str = Field(default_factory=lambda: f"video_{uuid.uuid4().hex[:12]}")
    title: Optional[str] = Field(default=None)
    status: VideoStatus = Field(default=VideoStatus.DRAFT)
    generation_inputs: GenerationInputs = Field(default_factory=GenerationInputs)
    video_plan: Optional[VideoPlan] = Field(default=None)

    asset_status: AssetStatus = Field(default=AssetStatus.PENDING)
    asset_run_id: Optional[str] = Field(default=None, description="Latest asset generation run")
    asset_progress: Optional[AssetProgress] = Field(default=None)
    asset_error: Optional[str] = Field(default=None)

    render_progress: Optional[RenderProgress] = Field(default=None)
    video_url: Optional[str] = Field(default=None)
    video_storage_key: Optional[str] = Field(default=None)
    thumbnail_url: Optional[str] = Field(default=None)
    thumbnail_storage_key: Optional[str] = Field(default=None)
    duration_seconds: Optional[int] = Field(default=None)
    error_message: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Results
# ============================================================================


class AssetError(BaseModel):
    """One failing scene/kind pair from an asset generation run."""

    scene_number: int
    kind: AssetKind
    error: str

    def describe(self) -> str:
        return f"Scene {self.scene_number} ({self.kind.value}): {self.error}"


class AssetGenerationResult(BaseModel):
    """Outcome of generate_all_assets."""

    images: list[ImageAssetRecord] = Field(default_factory=list)
    audio: list[AudioAssetRecord] = Field(default_factory=list)
    errors: list[AssetError] = Field(default_factory=list)
    status: AssetStatus
    progress: AssetProgress


class RenderResult(BaseModel):
    """Outcome of render_video."""

    video_url: str
    thumbnail_url: str
    duration_seconds: int
