"""Error taxonomy for the upload pipeline.

Every error carries the pipeline ``stage`` it was raised in and a
``user_message`` suitable for display. The pipeline converts anything raised
by a stage into one of these before it reaches the CLI.
"""

from typing import Optional


class ClipVaultError(Exception):
    user_message = "Upload failed. Please try again."

    def __init__(self, message: str, stage: Optional[str] = None, user_message: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        if user_message is not None:
            self.user_message = user_message


class InputRejected(ClipVaultError):
    """File is not a video or is larger than the upload ceiling. No session is created."""

    user_message = "Please select a video file"


class SessionBusy(ClipVaultError):
    """Another upload session is still in flight."""

    user_message = "An upload is already in progress"


class EngineLoadFailure(ClipVaultError):
    user_message = "Video processor failed to load. Please try again."


class EncodeFailure(ClipVaultError):
    pass


class UploadFailure(ClipVaultError):
    pass


class CommitFailure(ClipVaultError):
    pass


class UserCancelled(ClipVaultError):
    """Raised at the first suspension point that observes a cancel request."""

    user_message = "Upload cancelled"


class StorageError(Exception):
    """Raised by object store adapters."""


class DatabaseError(Exception):
    """Raised by metadata store adapters."""
