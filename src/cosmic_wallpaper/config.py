"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Credential (empty means no key selected yet)
    gemini_api_key: str = ""

    # Model identifiers
    standard_image_model: str = "gemini-2.5-flash-image"
    pro_image_model: str = "gemini-3-pro-image-preview"
    video_model: str = "veo-3.1-fast-generate-preview"
    prompt_model: str = "gemini-3-flash-preview"

    # Video generation
    video_resolution: str = "1080p"
    video_poll_interval_sec: float = 5.0
    download_timeout_sec: float = 120.0

    # Local store
    database_path: str = "./cosmic_wallpaper.db"
    prompt_ledger_max: int = 50

    # Observability
    log_feed_max_entries: int = 1000

    # HTTP surface
    allowed_origins: str = ""


settings = Settings()
