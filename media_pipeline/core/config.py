"""Application configuration using pydantic-settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONTENT_FILTER_PATTERNS = [
    r"\b(blood|bloody|gore|gory|violent|violence|death|dead|dying|kill|murder|weapon|gun|knife|attack|war|battle|fight|explosion|bomb|terrorist|terror)\b",
    r"\b(nude|naked|sexual|erotic|explicit|nsfw)\b",
    r"\b(hate|racist|discrimination)\b",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via environment variables or a .env file.
    See .env.example for a template.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # Application Settings
    # ========================================================================
    app_name: str = Field(default="Media Production Pipeline", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Optional log file path (rotated)")

    # ========================================================================
    # Generative Services (OpenAI)
    # ========================================================================
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    image_model: str = Field(default="dall-e-3", description="Image generation model")
    image_quality: str = Field(default="hd", description="Image quality passed to the image model")
    tts_model: str = Field(default="tts-1-hd", description="Text-to-speech model")
    request_timeout_seconds: float = Field(
        default=120.0, description="Timeout for a single generation request in seconds"
    )

    # ========================================================================
    # Retry / Content Filter Settings
    # ========================================================================
    max_retries: int = Field(
        default=3, ge=0, description="Retries after the first attempt (total attempts = max_retries + 1)"
    )
    retry_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Base delay for linear backoff on transient failures"
    )
    content_filter_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONTENT_FILTER_PATTERNS),
        description="Regex word lists stripped from prompts at sanitization level 1",
    )
    sanitize_framing_template: str = Field(
        default=(
            "Professional news broadcast style illustration: {prompt}. "
            "Clean, corporate, appropriate for all audiences."
        ),
        description="Framing sentence used at sanitization level 2 ({prompt} is the level-1 prompt)",
    )
    sanitize_generic_prompt: str = Field(
        default=(
            "Abstract professional illustration representing news and current events. "
            "Modern, clean design with blue and neutral tones. Suitable for news broadcast."
        ),
        description="Generic prompt substituted at sanitization level 3",
    )

    # ========================================================================
    # Generation Defaults
    # ========================================================================
    default_aspect_ratio: str = Field(default="16:9", description="Aspect ratio when a video has none (16:9, 9:16, 1:1)")
    default_voice: str = Field(default="neutral_male", description="Voice key when a video has none ('none' disables audio)")

    # ========================================================================
    # Object Storage Settings
    # ========================================================================
    storage_backend: str = Field(default="local", description="Object storage backend: 'local' or 's3'")
    local_storage_path: str = Field(default="storage/objects", description="Root directory for local object storage")
    aws_region: str = Field(default="us-east-1", description="AWS region for S3")
    aws_s3_bucket: Optional[str] = Field(default=None, description="S3 bucket name")
    aws_access_key_id: Optional[str] = Field(default=None, description="AWS access key ID")
    aws_secret_access_key: Optional[str] = Field(default=None, description="AWS secret access key")
    signed_url_ttl_seconds: int = Field(default=3600, description="Lifetime of pre-signed download URLs")
    download_timeout_seconds: float = Field(default=60.0, description="Timeout for downloading an asset")

    # ========================================================================
    # Persistence Settings
    # ========================================================================
    repository_path: str = Field(default="storage/videos", description="Directory for video documents and asset logs")

    # ========================================================================
    # Rendering (ffmpeg) Settings
    # ========================================================================
    render_temp_dir: Optional[str] = Field(
        default=None, description="Parent directory for render workspaces (default: system temp dir)"
    )
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")
    ffprobe_path: str = Field(default="ffprobe", description="ffprobe executable")
    video_fps: int = Field(default=25, description="Output frame rate")
    video_crf: int = Field(default=23, description="libx264 constant rate factor")
    video_preset: str = Field(default="medium", description="libx264 preset")
    audio_bitrate: str = Field(default="192k", description="AAC audio bitrate")
    max_zoom: float = Field(default=1.2, gt=1.0, description="Maximum zoom factor for pan/zoom effects")
    upscale_factor: int = Field(default=4, ge=1, description="Source image upscale before pan/zoom")
    max_scene_seconds: float = Field(default=60.0, gt=0, description="Upper bound on a still image's display time")
    thumbnail_offset_seconds: float = Field(default=1.0, ge=0, description="Thumbnail frame offset")
    probe_default_seconds: float = Field(
        default=5.0, description="Duration reported when ffprobe cannot determine one"
    )
    transform_timeout_seconds: float = Field(
        default=600.0, description="Wall-clock timeout for a single ffmpeg/ffprobe invocation"
    )


# Global settings instance
settings = Settings()
