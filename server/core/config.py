"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3020, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)
    cors_origins: List[str] = Field(default=["*"])

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/content_cache.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None)
    redis_enabled: bool = Field(default=False)
    cache_ttl: int = Field(default=86400, ge=1)  # 24 hours

    # Content Providers
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    text_model: str = Field(default="gpt-4o-mini")
    speech_model: str = Field(default="tts-1")
    image_model: str = Field(default="gpt-image-1-mini")

    # Object Storage (Supabase-compatible)
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)
    tts_bucket: str = Field(default="tts-cache")
    image_bucket: str = Field(default="story-images")
    signed_url_ttl: int = Field(default=3600, ge=60)

    # External News Source
    external_news_api_url: Optional[str] = Field(default=None)
    external_news_api_key: Optional[str] = Field(default=None)
    news_page_size: int = Field(default=12, ge=1, le=100)

    # Generation Tuning
    summary_max_tokens: int = Field(default=600, ge=50)
    summary_min_words: int = Field(default=130, ge=1)
    vocab_min_source_words: int = Field(default=60, ge=1)
    vocab_max_items: int = Field(default=8, ge=1, le=30)
    fallback_vocab_size: int = Field(default=5, ge=1, le=30)
    generation_timeout: float = Field(default=90.0, gt=0)
    batch_delay: float = Field(default=0.5, ge=0)
    single_flight_enabled: bool = Field(default=True)

    # Daily Topic Articles
    topic_article_count: int = Field(default=8, ge=1, le=16)
    topic_min_cached_articles: int = Field(default=4, ge=1)
    topic_generation_timeout: float = Field(default=300.0, gt=0)

    # Story Images
    image_cache_version: str = Field(default="2")
    image_output_format: Literal["png", "jpeg", "webp"] = Field(default="png")
    image_default_style: str = Field(default="editorial")
    image_default_quality: str = Field(default="medium")
    image_default_size: str = Field(default="1024x1536")
    image_fallback_url: Optional[str] = Field(default=None)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Service Timeouts
    ai_timeout: int = Field(default=30, ge=5, le=300)
    ai_max_retries: int = Field(default=2, ge=0, le=5)
    ai_retry_delay: float = Field(default=1.0, ge=0.0, le=10.0)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite") and ":memory:" not in v:
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def storage_configured(self) -> bool:
        """Object storage credentials are present."""
        return bool(self.supabase_url and self.supabase_service_role_key)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
