"""Domain events for the upload pipeline.

Events flow through the EventBus and decouple the pipeline from the console
view and the keyboard listener. See `infrastructure/event_bus.py`.
"""

from typing import Optional
from pydantic import BaseModel
from .models import RemoteArtifact, SessionState, Tier, UploadSession


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class SessionEvent(Event):
    """Base class for events about one upload session."""

    session: UploadSession


class SessionStarted(SessionEvent):
    pass


class StageChanged(SessionEvent):
    """Emitted on every state transition of the session."""

    stage: SessionState


class EngineProgress(Event):
    """Fractional progress reported by a running ffmpeg command.

    ``label`` names the command (``standard``, ``aggressive``, ``thumbnail``).
    """

    label: str
    fraction: float


class ProgressUpdated(Event):
    percent: int
    label: str


class TierSelected(SessionEvent):
    tier: Tier
    original_size: int
    standard_size: int
    chosen_size: int


class ArtifactUploaded(SessionEvent):
    artifact: RemoteArtifact


class SessionCompleted(SessionEvent):
    pass


class SessionFailed(SessionEvent):
    error_message: str
    stage: Optional[str] = None


class SessionCancelled(SessionEvent):
    pass


class CancelRequested(Event):
    """Emitted when the user asks to abort the running upload (key 'C' or Ctrl+C)."""

    pass
