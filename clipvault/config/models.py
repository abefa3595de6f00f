from typing import Optional
from pydantic import BaseModel, Field, model_validator

MIB = 1024 * 1024

class LimitsConfig(BaseModel):
    """Byte ceilings applied to one upload."""
    commit_max_bytes: int = Field(default=45 * MIB, gt=0)  # target before aggressive recompression
    store_max_bytes: int = Field(default=50 * MIB, gt=0)  # largest original kept as-is
    upload_max_bytes: int = Field(default=200 * MIB, gt=0)  # input pre-check

    @model_validator(mode="after")
    def validate_order(self):
        if self.commit_max_bytes > self.store_max_bytes:
            raise ValueError("commit_max_bytes must be <= store_max_bytes")
        if self.store_max_bytes > self.upload_max_bytes:
            raise ValueError("store_max_bytes must be <= upload_max_bytes")
        return self

class EncodeTier(BaseModel):
    crf: int = Field(ge=0, le=51)
    preset: str = "ultrafast"
    tune: Optional[str] = "fastdecode"
    audio_bitrate: str = "96k"

class ThumbnailConfig(BaseModel):
    width: int = Field(default=320, gt=0)
    height: int = Field(default=240, gt=0)
    quality: int = Field(default=5, ge=2, le=31)

class EncodingConfig(BaseModel):
    standard: EncodeTier = Field(default_factory=lambda: EncodeTier(crf=30, audio_bitrate="96k"))
    aggressive: EncodeTier = Field(default_factory=lambda: EncodeTier(crf=35, audio_bitrate="64k"))
    thumbnail: ThumbnailConfig = Field(default_factory=ThumbnailConfig)
    ffmpeg_binary: str = "ffmpeg"

    @model_validator(mode="after")
    def validate_tiers(self):
        if self.aggressive.crf < self.standard.crf:
            raise ValueError("aggressive.crf must be >= standard.crf")
        return self

class StorageConfig(BaseModel):
    endpoint_url: Optional[str] = None
    bucket: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = "auto"
    sign_ttl_seconds: int = Field(default=3600, gt=0)

class DatabaseConfig(BaseModel):
    url: Optional[str] = None
    key: Optional[str] = None
    table: str = "videos"

class PipelineConfig(BaseModel):
    cancel_grace_s: float = Field(default=0.5, ge=0.0)
    debug: bool = False
    log_path: Optional[str] = None

class AppConfig(BaseModel):
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
