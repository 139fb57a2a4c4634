from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STYLE_MODELS = {
    "ghibli": "stability-ai/stable-video-diffusion:3f0457e4619daac51203dedb1a4f3482d9b4c1f3d0b46a3a4b9b2d7b5b5b5b5b",
    "cinematic": "stability-ai/stable-video-diffusion:3f0457e4619daac51203dedb1a4f3482d9b4c1f3d0b46a3a4b9b2d7b5b5b5b5b",
    "anime": "cjwbw/animatediff:3f3d6c4f7a8b9c2d1e0f9a8b7c6d5e4f3a2b1c0d9e8f7a6b5c4d3e2f1a0b9c8",
    "watercolor": "stability-ai/stable-diffusion:27b93a2413e7f36cd83da926f3656280b2931564ff050bf9575f1fdf9bcd7478",
    "vintage": "stability-ai/stable-diffusion:27b93a2413e7f36cd83da926f3656280b2931564ff050bf9575f1fdf9bcd7478",
    "modern": "stability-ai/stable-diffusion:27b93a2413e7f36cd83da926f3656280b2931564ff050bf9575f1fdf9bcd7478",
    "elegant": "stability-ai/stable-diffusion:27b93a2413e7f36cd83da926f3656280b2931564ff050bf9575f1fdf9bcd7478",
    "romantic": "stability-ai/stable-diffusion:27b93a2413e7f36cd83da926f3656280b2931564ff050bf9575f1fdf9bcd7478",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INVITATION_SERVICE_", env_file=".env", env_file_encoding="utf-8")

    app_name: str = "invitation-video-service"
    host: str = "0.0.0.0"
    port: int = 8100

    # Job layout
    outputs_dir: Path = Path("outputs")
    outputs_url_prefix: str = "/outputs"
    default_session: str = "default"
    keep_failed_artifacts: bool = False
    require_template_fields: bool = False

    # Template catalog and decorative assets
    templates_path: Path | None = None
    themes_dir: Path = Path("assets/themes")
    fonts_dir: Path = Path("assets/fonts")

    # Output format
    video_width: int = 1920
    video_height: int = 1080
    video_fps: int = 30
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    pixel_format: str = "yuv420p"
    video_preset: str = "medium"
    fade_duration_seconds: float = 1.0

    # External processes
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    ffmpeg_timeout_seconds: float = 300.0
    scene_render_timeout_seconds: float = 300.0
    asset_download_timeout: float = 60.0

    # Concurrency
    max_concurrent_jobs: int = 2
    render_workers: int = 1

    # Style transfer provider
    style_provider_url: str = "https://api.replicate.com"
    style_api_token: str = ""
    style_timeout_seconds: float = 600.0
    style_poll_interval_seconds: float = 2.0
    style_failure_policy: Literal["fallback", "fail"] = "fallback"
    style_models: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_STYLE_MODELS))

    # Job update events
    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_updates_topic: str = "invitation_video_updates"

    # Object storage for finished videos
    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_bucket: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str | None = None
    storage_folder_prefix: str = "invitations"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
