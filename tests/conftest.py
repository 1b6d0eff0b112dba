"""Shared pytest fixtures and configuration."""

import base64
import io
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from PIL import Image

from media_pipeline.core.config import Settings
from media_pipeline.core.logging_config import get_logger
from media_pipeline.models.schemas import GenerationInputs, Scene, VideoPlan, VideoRecord
from media_pipeline.services.object_storage import LocalObjectStorage
from media_pipeline.storage.repository import VideoRepository


@pytest.fixture
def settings(tmp_path):
    """Create test settings instance rooted in a temp directory."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        retry_delay_seconds=0.0,
        repository_path=str(tmp_path / "videos"),
        local_storage_path=str(tmp_path / "objects"),
        render_temp_dir=str(tmp_path / "renders"),
    )


@pytest.fixture
def logger():
    """Create test logger instance."""
    return get_logger(__name__)


@pytest.fixture
def repository(settings, logger):
    """Video repository in a temp directory."""
    return VideoRepository(settings, logger)


@pytest.fixture
def storage(settings, logger):
    """Local object storage in a temp directory."""
    return LocalObjectStorage(settings, logger)


@pytest.fixture
def sample_plan():
    """Three scenes; scene 2 has no narration."""
    return VideoPlan(
        title="Harbor Update",
        scenes=(
            Scene(scene_number=1, image_prompt="A quiet harbor at sunrise", narration="The harbor wakes up."),
            Scene(scene_number=2, image_prompt="Fishing boats leaving the dock", narration=""),
            Scene(scene_number=3, image_prompt="A violent storm over the bay", narration="Then the storm arrived."),
        ),
    )


@pytest.fixture
def sample_video(sample_plan):
    """Video record for the sample plan."""
    return VideoRecord(
        video_id="video_test123",
        title=sample_plan.title,
        generation_inputs=GenerationInputs(aspect_ratio="16:9", voice="neutral_female"),
        video_plan=sample_plan,
    )


def make_png(width: int = 16, height: int = 9) -> bytes:
    """Small valid PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (30, 60, 90)).save(buffer, format="PNG")
    return buffer.getvalue()


def image_response(data: bytes, revised_prompt: str = "revised") -> SimpleNamespace:
    """Shape of an images.generate response with b64_json data."""
    return SimpleNamespace(
        data=[SimpleNamespace(b64_json=base64.b64encode(data).decode("ascii"), revised_prompt=revised_prompt)]
    )


def speech_response(data: bytes = b"ID3-fake-mp3") -> SimpleNamespace:
    return SimpleNamespace(content=data)


def status_error(error_cls, status_code: int, message: str, code: str = None):
    """Build an OpenAI APIStatusError subclass the way the SDK raises it."""
    request = httpx.Request("POST", "https://api.openai.com/v1/images/generations")
    response = httpx.Response(status_code, request=request)
    body = {"message": message, "code": code} if code else {"message": message}
    return error_cls(message, response=response, body=body)


def make_openai_client(image_side_effect=None, speech_side_effect=None) -> MagicMock:
    """MagicMock standing in for AsyncOpenAI with async images/speech endpoints."""
    client = MagicMock()
    client.images.generate = AsyncMock(side_effect=image_side_effect)
    client.audio.speech.create = AsyncMock(side_effect=speech_side_effect)
    return client
