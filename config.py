from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PKG_DIR = Path(__file__).resolve().parent
ENV_PATH = PKG_DIR / ".env"


class Settings(BaseSettings):
    # App
    app_env: str = "dev"
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"], validation_alias="CORS_ORIGINS"
    )

    # Storage
    storage_backend: str = Field("memory", validation_alias="STORAGE_BACKEND")
    database_url: str = Field(
        f"sqlite:///{PKG_DIR / 'lorgx.db'}", validation_alias="DATABASE_URL"
    )
    seed_demo_data: bool = Field(True, validation_alias="SEED_DEMO_DATA")

    # Deletion
    delete_grace_hours: int = Field(72, validation_alias="DELETE_GRACE_HOURS")
    purge_interval_seconds: int = Field(
        600, validation_alias="PURGE_INTERVAL_SECONDS"
    )

    # Search
    default_search_limit: int = 20
    max_search_limit: int = 200

    # Recommendations
    default_recommend_limit: int = 10
    location_prefix_length: int = Field(
        4, validation_alias="LOCATION_PREFIX_LENGTH"
    )

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
