from __future__ import annotations

from typing import Literal, Optional

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: AnyUrl
    SUPABASE_SERVICE_ROLE_KEY: str
    APP_ENV: str = "local"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:8080"],
    )

    # Object storage
    STORAGE_BACKEND: Literal["supabase", "r2"] = "supabase"
    STORAGE_BUCKET: str = "webinars"
    MAX_UPLOAD_BYTES: int = 1024 * 1024 * 1024

    # Transcription service
    ASSEMBLYAI_API_KEY: Optional[str] = None
    ASSEMBLYAI_BASE_URL: str = "https://api.assemblyai.com/v2"

    # Generative text service
    LLM_PROVIDER: Literal["gateway", "gemini"] = "gateway"
    AI_GATEWAY_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    AI_GATEWAY_API_KEY: Optional[str] = None
    AI_MODEL: str = "google/gemini-2.5-flash"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # Content generation cache
    CONTENT_CACHE_TTL_SECONDS: int = 60 * 60
    CONTENT_CACHE_MAX_ENTRIES: int = 100

    # Clip rendering
    CLIP_RENDER_TEMP_DIR: str = "/tmp/clip-renderer"
    FFMPEG_BINARY: str = "ffmpeg"


settings = Settings()
