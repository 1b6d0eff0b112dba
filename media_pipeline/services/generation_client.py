"""Generation Client - image and speech generation with content-filter retry policy."""

import asyncio
import base64
import io
from typing import Any, Optional

import openai
from openai import AsyncOpenAI
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from media_pipeline.core.config import Settings
from media_pipeline.core.errors import (
    GenerationBlocked,
    GenerationExhausted,
    GenerationFatal,
    GenerationTransient,
)
from media_pipeline.services.prompt_sanitizer import MAX_LEVEL, PromptSanitizer

NO_VOICE = "none"
DEFAULT_PROVIDER_VOICE = "alloy"

# Semantic voice keys -> OpenAI TTS voices
# alloy: neutral, echo: deeper male, fable: warm, onyx: deep authoritative male,
# nova: warm female, shimmer: clear professional female
VOICE_MAP = {
    "neutral_male": "alloy",
    "neutral_female": "nova",
    "authoritative_male": "onyx",
    "authoritative_female": "shimmer",
    "friendly_male": "fable",
    "friendly_female": "nova",
    "professional_male": "echo",
    "professional_female": "shimmer",
    "calm_male": "onyx",
    "calm_female": "nova",
    "energetic_male": "fable",
    "energetic_female": "shimmer",
}

# Aspect ratio -> DALL-E 3 size
IMAGE_SIZES = {
    "16:9": "1792x1024",
    "9:16": "1024x1792",
}
DEFAULT_IMAGE_SIZE = "1024x1024"

_POLICY_MARKERS = ("content_policy", "content policy", "safety system", "policy", "blocked", "filter")


def resolve_voice(voice_key: Optional[str]) -> str:
    """Map a semantic voice key to a provider voice, defaulting to a neutral voice."""
    return VOICE_MAP.get(voice_key or "", DEFAULT_PROVIDER_VOICE)


def is_voice_disabled(voice_key: Optional[str]) -> bool:
    return voice_key == NO_VOICE


def image_size_for(aspect_ratio: Optional[str]) -> str:
    """Generation size for an aspect ratio (16:9 wide, 9:16 tall, anything else square)."""
    return IMAGE_SIZES.get(aspect_ratio or "", DEFAULT_IMAGE_SIZE)


def classify_provider_error(error: Exception) -> Exception:
    """
    Translate an OpenAI SDK error into the pipeline's generation taxonomy.

    Args:
        error: Exception raised by the OpenAI client

    Returns:
        GenerationBlocked, GenerationTransient or GenerationFatal
    """
    message = str(error)
    lowered = message.lower()

    if isinstance(error, openai.BadRequestError):
        code = (getattr(error, "code", None) or "").lower()
        if code == "content_policy_violation" or any(marker in lowered for marker in _POLICY_MARKERS):
            return GenerationBlocked(message)
        return GenerationFatal(message)
    if isinstance(error, (openai.RateLimitError, openai.APIConnectionError, openai.InternalServerError)):
        return GenerationTransient(message)
    if isinstance(error, openai.APIStatusError) and error.status_code >= 500:
        return GenerationTransient(message)
    return GenerationFatal(message)


class GeneratedImage(BaseModel):
    """Image bytes plus the provenance of the prompt that produced them."""

    data: bytes = Field(..., description="Encoded image")
    model_id: str = Field(..., description="Model that produced the image")
    used_prompt: str = Field(..., description="Prompt actually sent (after sanitization)")
    revised_prompt: Optional[str] = Field(default=None, description="Prompt as rewritten by the provider")
    sanitization_level: int = Field(default=0, ge=0, le=3)
    attempts: int = Field(default=1, ge=1)
    width: Optional[int] = None
    height: Optional[int] = None
    mime_type: str = "image/png"


class GeneratedSpeech(BaseModel):
    """Synthesized audio bytes."""

    data: bytes = Field(..., description="Encoded audio")
    model_id: str = Field(..., description="TTS model")
    voice: str = Field(..., description="Provider voice identifier")
    attempts: int = Field(default=1, ge=1)
    mime_type: str = "audio/mpeg"


class GenerationClient:
    """Client for the generative image and text-to-speech services."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        client: Optional[AsyncOpenAI] = None,
        sanitizer: Optional[PromptSanitizer] = None,
    ):
        """
        Initialize the generation client.

        Args:
            settings: Application settings
            logger: Logger instance
            client: Optional preconfigured AsyncOpenAI client
            sanitizer: Optional prompt sanitizer (built from settings by default)
        """
        self.settings = settings
        self.logger = logger
        self._client = client
        self.sanitizer = sanitizer or PromptSanitizer.from_settings(settings)
        self.max_retries = settings.max_retries
        self.retry_delay_seconds = settings.retry_delay_seconds

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise GenerationFatal("OpenAI API key not configured")
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.request_timeout_seconds,
                max_retries=0,
            )
        return self._client

    # ------------------------------------------------------------------
    # Image generation
    # ------------------------------------------------------------------

    async def generate_image(self, prompt: str, size: str = DEFAULT_IMAGE_SIZE) -> GeneratedImage:
        """
        Generate an image, escalating prompt sanitization on content-filter blocks.

        A blocked request is retried with the original prompt sanitized one level
        further; a transient failure is retried with the same prompt after a
        linear backoff. Fatal failures are raised immediately.

        Args:
            prompt: Image prompt from the video plan
            size: Provider image size (e.g. 1792x1024)

        Returns:
            GeneratedImage with the prompt actually used

        Raises:
            GenerationFatal: On non-retryable failures
            GenerationExhausted: When every attempt failed
        """
        total_attempts = self.max_retries + 1
        current_prompt = prompt
        level = 0
        last_error: Optional[Exception] = None

        for attempt in range(1, total_attempts + 1):
            preview = current_prompt[:100] + "..." if len(current_prompt) > 100 else current_prompt
            self.logger.info(f"Image generation attempt {attempt}/{total_attempts} (sanitization level {level}): {preview}")
            try:
                data, revised_prompt = await self._request_image(current_prompt, size)
            except GenerationBlocked as e:
                last_error = e
                if attempt < total_attempts:
                    level = min(level + 1, MAX_LEVEL)
                    current_prompt = self.sanitizer.sanitize(prompt, level)
                    self.logger.warning(f"Content filter blocked image prompt. Retrying with sanitization level {level}")
                continue
            except GenerationTransient as e:
                last_error = e
                self.logger.warning(f"Transient image generation failure (attempt {attempt}/{total_attempts}): {e}")
                if attempt < total_attempts:
                    await self._backoff(attempt)
                continue

            width, height = self._image_dimensions(data)
            if attempt > 1:
                self.logger.info(f"Image generation succeeded on attempt {attempt} (sanitization level {level})")
            return GeneratedImage(
                data=data,
                model_id=self.settings.image_model,
                used_prompt=current_prompt,
                revised_prompt=revised_prompt,
                sanitization_level=level,
                attempts=attempt,
                width=width,
                height=height,
            )

        raise GenerationExhausted("image", total_attempts, last_error)

    async def _request_image(self, prompt: str, size: str) -> tuple[bytes, Optional[str]]:
        """Single provider call; returns decoded bytes and the provider's revised prompt."""
        client = self.client
        try:
            response = await client.images.generate(
                model=self.settings.image_model,
                prompt=prompt,
                n=1,
                size=size,
                quality=self.settings.image_quality,
                response_format="b64_json",
            )
        except openai.OpenAIError as e:
            raise classify_provider_error(e) from e

        if not response.data or not response.data[0].b64_json:
            raise GenerationTransient("Image service returned no image data")
        image_data = response.data[0]
        return base64.b64decode(image_data.b64_json), getattr(image_data, "revised_prompt", None)

    def _image_dimensions(self, data: bytes) -> tuple[Optional[int], Optional[int]]:
        try:
            with Image.open(io.BytesIO(data)) as image:
                return image.size
        except (UnidentifiedImageError, OSError) as e:
            self.logger.warning(f"Could not read generated image dimensions: {e}")
            return None, None

    # ------------------------------------------------------------------
    # Speech generation
    # ------------------------------------------------------------------

    async def generate_speech(self, text: str, voice_id: str = DEFAULT_PROVIDER_VOICE) -> GeneratedSpeech:
        """
        Synthesize narration audio.

        Only transient failures are retried (linear backoff); content is never rewritten.

        Args:
            text: Narration text
            voice_id: Provider voice identifier (see resolve_voice)

        Returns:
            GeneratedSpeech with MP3 bytes

        Raises:
            ValueError: If text is empty
            GenerationBlocked / GenerationFatal: On non-retryable failures
            GenerationExhausted: When every attempt failed
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        total_attempts = self.max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, total_attempts + 1):
            self.logger.info(f"Audio generation attempt {attempt}/{total_attempts} (voice={voice_id}, {len(text)} characters)")
            try:
                data = await self._request_speech(text, voice_id)
            except GenerationTransient as e:
                last_error = e
                self.logger.warning(f"Transient audio generation failure (attempt {attempt}/{total_attempts}): {e}")
                if attempt < total_attempts:
                    await self._backoff(attempt)
                continue

            if attempt > 1:
                self.logger.info(f"Audio generation succeeded on attempt {attempt}")
            return GeneratedSpeech(data=data, model_id=self.settings.tts_model, voice=voice_id, attempts=attempt)

        raise GenerationExhausted("audio", total_attempts, last_error)

    async def _request_speech(self, text: str, voice_id: str) -> bytes:
        client = self.client
        try:
            response = await client.audio.speech.create(
                model=self.settings.tts_model,
                voice=voice_id,
                input=text,
            )
        except openai.OpenAIError as e:
            raise classify_provider_error(e) from e
        return response.content

    async def _backoff(self, attempt: int) -> None:
        delay = attempt * self.retry_delay_seconds
        if delay > 0:
            self.logger.debug(f"Backing off {delay:.1f}s before retry")
            await asyncio.sleep(delay)
