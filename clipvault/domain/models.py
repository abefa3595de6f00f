from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

class SessionState(str, Enum):
    IDLE = "IDLE"
    LOADING_ENGINE = "LOADING_ENGINE"
    COMPRESSING = "COMPRESSING"
    RECOMPRESSING_AGGRESSIVE = "RECOMPRESSING_AGGRESSIVE"
    EXTRACTING_THUMBNAIL = "EXTRACTING_THUMBNAIL"
    UPLOADING = "UPLOADING"
    COMMITTING = "COMMITTING"
    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETE, SessionState.CANCELLED, SessionState.FAILED)

class Tier(str, Enum):
    ORIGINAL = "ORIGINAL"
    STANDARD = "STANDARD"
    AGGRESSIVE = "AGGRESSIVE"

class UserProfile(BaseModel):
    user_id: str = Field(min_length=1)
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

class InputFile(BaseModel):
    path: Path
    media_type: str
    size_bytes: int = Field(gt=0)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".").lower() or "bin"

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

class EncodeAttempt(BaseModel):
    data: bytes = Field(repr=False)
    tier: Tier

    @property
    def size_bytes(self) -> int:
        return len(self.data)

class Thumbnail(BaseModel):
    data: bytes = Field(repr=False)
    content_type: str = "image/jpeg"

    @property
    def size_bytes(self) -> int:
        return len(self.data)

class RemoteArtifact(BaseModel):
    key: str
    content_type: str
    size_bytes: int

class VideoRecord(BaseModel):
    """Row committed to the ``videos`` table once both artifacts are stored."""

    user_id: str
    filename: str
    storage_path: str
    thumbnail_path: str
    original_size: int
    compressed_size: int
    share_token: str
    user_name: str = "Anonymous User"
    user_avatar_url: Optional[str] = None

class UploadSession(BaseModel):
    input_file: InputFile
    profile: UserProfile
    state: SessionState = SessionState.IDLE
    cancel_requested: bool = False
    progress_percent: int = Field(default=0, ge=0, le=100)
    progress_label: str = ""
    chosen: Optional[EncodeAttempt] = None
    video_artifact: Optional[RemoteArtifact] = None
    thumbnail_artifact: Optional[RemoteArtifact] = None
    record: Optional[VideoRecord] = None
    failed_stage: Optional[str] = None
    error_message: Optional[str] = None
