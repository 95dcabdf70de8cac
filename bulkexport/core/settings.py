# bulkexport/core/settings.py
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"  # local | development | production

    # --- Storage ---
    S3_BUCKET: Optional[str] = None
    S3_REGION: str = "eu-west-1"
    S3_ENDPOINT_URL: Optional[str] = None  # minio / localstack
    s3_max_attempts: int = 5
    s3_connect_timeout: int = 3
    s3_read_timeout: int = 60

    # --- Source ---
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DATABASE: str = "app"

    # --- Export defaults ---
    export_chunk_size_bytes: int = 1024 * 1024
    export_max_concurrency: int = 5
    export_batch_size: int = 1000
    export_part_retry_attempts: int = 1  # 1 = geen retry
    export_skip_malformed: bool = False
    export_json_mode: str = "canonical"  # canonical | relaxed
    export_content_type: str = "application/x-ndjson"

    # --- Logging / metrics ---
    log_level: str = "INFO"
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()  # leest .env
