from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BUNDLED_FONT_DIR = Path(__file__).resolve().parent / "assets" / "fonts"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    INKSEAL_ENV: str = "development"
    INKSEAL_STORAGE_DRIVER: str = "local"
    INKSEAL_STORAGE_LOCAL_DIR: str = ".data"
    INKSEAL_DOCUMENT_ROOT: str = "."
    INKSEAL_S3_BUCKET: Optional[str] = None
    INKSEAL_S3_REGION: Optional[str] = None
    INKSEAL_S3_ACCESS_KEY: Optional[str] = None
    INKSEAL_S3_SECRET_KEY: Optional[str] = None
    INKSEAL_S3_ENDPOINT: Optional[str] = None
    INKSEAL_S3_PREFIX: Optional[str] = None
    INKSEAL_MAX_UPLOAD_MB: int = 25
    INKSEAL_FONT_DIR: Optional[str] = None
    INKSEAL_SUBSET_FONTS: bool = True
    INKSEAL_TEXT_DEFAULT_FONT_SIZE: float = 14
    INKSEAL_TEXT_MIN_FONT_SIZE: float = 8
    INKSEAL_TEXT_MAX_FONT_SIZE: float = 48
    INKSEAL_SIGNATURE_FONT_SIZE: float = 32
    INKSEAL_BUILD_VERSION: Optional[str] = None
    WEB_ORIGIN: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _validate_s3(self) -> "Settings":
        if self.INKSEAL_STORAGE_DRIVER.lower() == "s3":
            missing = [
                name
                for name, value in {
                    "INKSEAL_S3_BUCKET": self.INKSEAL_S3_BUCKET,
                    "INKSEAL_S3_ACCESS_KEY": self.INKSEAL_S3_ACCESS_KEY,
                    "INKSEAL_S3_SECRET_KEY": self.INKSEAL_S3_SECRET_KEY,
                }.items()
                if not value
            ]
            if missing:
                raise ValueError(f"Missing required S3 settings: {', '.join(missing)}")
        return self

    @model_validator(mode="after")
    def _validate_font_sizes(self) -> "Settings":
        if self.INKSEAL_TEXT_MIN_FONT_SIZE > self.INKSEAL_TEXT_MAX_FONT_SIZE:
            raise ValueError("INKSEAL_TEXT_MIN_FONT_SIZE must not exceed INKSEAL_TEXT_MAX_FONT_SIZE")
        return self

    @property
    def document_root(self) -> Path:
        return Path(self.INKSEAL_DOCUMENT_ROOT).expanduser().resolve()

    @property
    def font_dir(self) -> Path:
        if self.INKSEAL_FONT_DIR:
            return Path(self.INKSEAL_FONT_DIR)
        return BUNDLED_FONT_DIR


@lru_cache
def get_settings() -> Settings:
    return Settings()
