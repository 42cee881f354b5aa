import tempfile
from functools import lru_cache
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Slideshow Video Service"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Object storage (S3 compatible, Cloudflare R2 by default)
    aws_account_id: str = Field(min_length=1)
    aws_s3_bucket: str = Field(min_length=1)
    aws_access_key_id: str = Field(min_length=1)
    aws_secret_access_key: str = Field(min_length=1)
    aws_region: str = Field(min_length=1)
    s3_endpoint_url: Optional[str] = None
    public_base_url: str = "https://r2.shubh.one"
    upload_timeout_seconds: int = Field(default=120, ge=1)

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    encode_timeout_seconds: int = Field(default=600, ge=1)

    # Downloads
    scratch_dir: str = Field(default_factory=tempfile.gettempdir)
    fetch_timeout_seconds: int = Field(default=60, ge=1)
    fetch_retries: int = Field(default=0, ge=0)
    max_parallel_downloads: int = Field(default=8, ge=1)

    # Admission control
    max_concurrent_jobs: int = Field(default=2, ge=1)
    admission_timeout_seconds: float = Field(default=30.0, ge=0)

    @computed_field
    @property
    def storage_endpoint(self) -> str:
        if self.s3_endpoint_url:
            return self.s3_endpoint_url
        return f"https://{self.aws_account_id}.r2.cloudflarestorage.com"


@lru_cache
def get_settings() -> Settings:
    return Settings()
