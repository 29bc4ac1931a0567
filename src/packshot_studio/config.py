from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file for convenience.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    # Keys
    remove_bg_api_key: str | None = None
    gemini_api_key: str | None = None

    # remove.bg
    remove_bg_url: str = "https://api.remove.bg/v1.0/removebg"
    remove_bg_timeout_s: float = 30.0
    remove_bg_max_bytes: int = 50 * 1024 * 1024
    remove_bg_max_megapixels: float = 50.0

    # Filename analysis
    gemini_text_model: str = "gemini-2.0-flash"
    ai_batch_size: int = 5

    # Packshot
    frame_size: int = 800
    max_workers: int = 1


settings = Settings()
