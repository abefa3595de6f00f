"""Upload pipeline orchestrator.

Runs one upload session end to end:

    validate input -> load engine -> stage input -> standard encode
    -> tier decision (-> aggressive encode) -> thumbnail
    -> upload video -> upload thumbnail -> commit record

Key responsibilities:
- Reject input that is not a video or exceeds the upload ceiling before any engine work
- Allow only one session at a time (a second call is rejected, not queued)
- Check the session's CancellationToken at every suspension point
- Release the engine on every exit path (success, failure, cancel)
- Convert every stage error into a FAILED session with one user-facing message
- Publish session events for the console view (SessionStarted, StageChanged, ...)
"""

import logging
import mimetypes
import threading
import time
from pathlib import Path
from typing import Callable, Optional
from clipvault.config.models import AppConfig
from clipvault.domain.errors import ClipVaultError, InputRejected, SessionBusy, UserCancelled
from clipvault.domain.events import (
    ArtifactUploaded,
    CancelRequested,
    SessionCancelled,
    SessionCompleted,
    SessionFailed,
    SessionStarted,
    StageChanged,
    TierSelected,
)
from clipvault.domain.models import InputFile, SessionState, Tier, UploadSession, UserProfile, VideoRecord
from clipvault.domain.repositories import ObjectStore, VideoRecordStore
from clipvault.infrastructure.engine import TranscodeEngine
from clipvault.infrastructure.event_bus import EventBus
from clipvault.pipeline.cancellation import CancellationToken
from clipvault.pipeline.compression_policy import CompressionPolicy
from clipvault.pipeline.keys import build_keys
from clipvault.pipeline.progress import ProgressReporter
from clipvault.pipeline.sequencer import ANONYMOUS_NAME, UploadSequencer, new_share_token
from clipvault.pipeline.thumbnail import Thumbnailer

MIB = 1024 * 1024
GENERIC_FAILURE = "Upload failed. Please try again."

# Missing from some platforms' mime tables
mimetypes.add_type("video/x-matroska", ".mkv")
mimetypes.add_type("video/webm", ".webm")
mimetypes.add_type("video/x-flv", ".flv")


class UploadPipeline:
    """Single-session upload pipeline.

    Args:
        config: AppConfig with limits, encoding tiers and pipeline settings.
        event_bus: EventBus for session and progress events.
        store: ObjectStore receiving the video and thumbnail.
        records: VideoRecordStore receiving the committed row.
        engine_factory: Builds a fresh TranscodeEngine per session.
        progress: Optional ProgressReporter (one is created on the bus otherwise).
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        store: ObjectStore,
        records: VideoRecordStore,
        engine_factory: Optional[Callable[[], TranscodeEngine]] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        self.engine_factory = engine_factory or (
            lambda: TranscodeEngine(event_bus, config.encoding.ffmpeg_binary, debug=config.pipeline.debug)
        )
        self.progress = progress or ProgressReporter(event_bus)
        self.policy = CompressionPolicy(config.encoding, config.limits)
        self.thumbnailer = Thumbnailer(config.encoding.thumbnail)
        self.sequencer = UploadSequencer(store, records)

        # Single-session guard
        self._session_lock = threading.Lock()
        self._session: Optional[UploadSession] = None
        self._token: Optional[CancellationToken] = None
        self._engine: Optional[TranscodeEngine] = None
        self._cancelling = False
        self._current_stage = "idle"

        self.event_bus.subscribe(CancelRequested, self._on_cancel_requested)

    @property
    def state(self) -> SessionState:
        session = self._session
        return session.state if session is not None else SessionState.IDLE

    @property
    def busy(self) -> bool:
        return self._session_lock.locked()

    @property
    def cancelling(self) -> bool:
        return self._cancelling

    # ── Input check ────────────────────────────────────────────────────────

    def validate_input(self, path: Path) -> InputFile:
        """Checks type and size before any session exists."""
        path = Path(path)
        if not path.is_file():
            raise InputRejected(f"Not a file: {path}", stage="input", user_message=f"File not found: {path.name}")

        media_type, _ = mimetypes.guess_type(path.name)
        if not media_type or not media_type.startswith("video/"):
            raise InputRejected(f"Not a video ({media_type}): {path}", stage="input")

        size = path.stat().st_size
        if size <= 0:
            raise InputRejected(f"Empty file: {path}", stage="input", user_message="The selected file is empty")

        max_size = self.config.limits.upload_max_bytes
        if size > max_size:
            raise InputRejected(
                f"File too large: {size} > {max_size}",
                stage="input",
                user_message=(
                    f"File too large! Maximum recommended size is {round(max_size / MIB)}MB. "
                    f"Your file is {round(size / MIB)}MB. Please compress your video first or choose a smaller file."
                ),
            )
        return InputFile(path=path, media_type=media_type, size_bytes=size)

    # ── Cancellation ───────────────────────────────────────────────────────

    def _on_cancel_requested(self, event: CancelRequested):
        self.cancel()

    def cancel(self) -> bool:
        """Requests cancellation of the running session.

        Returns False when nothing is running or a cancel is already in
        progress. Teardown happens on the pipeline thread at its next
        suspension point.
        """
        token = self._token
        session = self._session
        if token is None or session is None or self._cancelling:
            return False
        self._cancelling = True
        token.cancel()
        session.cancel_requested = True
        self.logger.info(f"CANCEL_REQUESTED: {session.input_file.name} stage={self._current_stage}")
        self.progress.set_label("Cancelling upload...")
        return True

    # ── Session ────────────────────────────────────────────────────────────

    def run(self, path: Path, profile: UserProfile) -> UploadSession:
        """Processes one file end to end and returns the finished session.

        Raises InputRejected (bad input) or SessionBusy (another session in
        flight). Every other problem is reported through the returned
        session's ``state`` (COMPLETE, FAILED or CANCELLED).
        """
        input_file = self.validate_input(path)
        if not self._session_lock.acquire(blocking=False):
            raise SessionBusy("Upload already in progress", stage="input")
        try:
            return self._run_session(input_file, profile)
        finally:
            self._session_lock.release()

    def _transition(self, session: UploadSession, state: SessionState):
        session.state = state
        self.event_bus.publish(StageChanged(session=session, stage=state))

    def _enter(self, session: UploadSession, stage: str, state: Optional[SessionState] = None, label: Optional[str] = None):
        self._current_stage = stage
        if state is not None and session.state != state:
            self._transition(session, state)
        self.progress.enter(stage, label)

    def _release_engine(self):
        engine = self._engine
        self._engine = None
        if engine is not None:
            engine.release()

    def _run_session(self, input_file: InputFile, profile: UserProfile) -> UploadSession:
        # A previous session's engine may survive a cancel that raced with completion.
        self._release_engine()

        token = CancellationToken()
        session = UploadSession(input_file=input_file, profile=profile)
        self._token = token
        self._session = session
        self._cancelling = False
        self._current_stage = "load_engine"
        self.progress.reset(session)
        self.event_bus.publish(SessionStarted(session=session))
        self.logger.info(f"SESSION_START: {input_file.name} size={input_file.size_bytes} user={profile.user_id}")

        try:
            self._process(session, token)
        except UserCancelled as exc:
            self._finish_cancelled(session, exc.stage)
        except ClipVaultError as exc:
            if token.cancelled:
                # ffmpeg killed under us, etc.
                self._finish_cancelled(session, exc.stage)
            else:
                self._finish_failed(session, exc.stage or self._current_stage, exc, exc.user_message)
        except Exception as exc:
            if token.cancelled:
                self._finish_cancelled(session, self._current_stage)
            else:
                self.logger.exception(f"UNEXPECTED_ERROR: {input_file.name} stage={self._current_stage}")
                self._finish_failed(session, self._current_stage, exc, GENERIC_FAILURE)
        finally:
            self._release_engine()
            if session.state == SessionState.CANCELLED and self.config.pipeline.cancel_grace_s > 0:
                # Let the killed ffmpeg process settle before a new session may start.
                time.sleep(self.config.pipeline.cancel_grace_s)
            self._session = None
            self._token = None
            self._cancelling = False
            self._current_stage = "idle"

        return session

    def _process(self, session: UploadSession, token: CancellationToken):
        input_file = session.input_file
        profile = session.profile

        self._enter(session, "load_engine", SessionState.LOADING_ENGINE)
        engine = self.engine_factory()
        self._engine = engine
        engine.acquire()
        token.raise_if_cancelled("load_engine")

        self._enter(session, "stage_input")
        original = input_file.read_bytes()
        input_name = f"input.{input_file.extension}"
        engine.stage(input_name, original)
        token.raise_if_cancelled("stage_input")

        self._enter(session, "standard", SessionState.COMPRESSING)

        def on_policy_stage(stage: str):
            if stage == "aggressive":
                self._enter(session, "aggressive", SessionState.RECOMPRESSING_AGGRESSIVE)
            else:
                self._enter(session, stage)

        result = self.policy.compress(engine, input_name, original, token, on_stage=on_policy_stage)
        session.chosen = result.chosen
        if result.tier == Tier.ORIGINAL:
            self.progress.set_label("Original file is smaller, using original...")
        self.event_bus.publish(TierSelected(
            session=session,
            tier=result.tier,
            original_size=input_file.size_bytes,
            standard_size=result.standard_size,
            chosen_size=result.chosen.size_bytes,
        ))

        self._enter(session, "thumbnail", SessionState.EXTRACTING_THUMBNAIL)
        thumbnail = self.thumbnailer.extract(engine, result.source_name, token)

        keys = build_keys(profile.user_id, input_file.name)

        self._enter(session, "upload_video", SessionState.UPLOADING)
        session.video_artifact = self.sequencer.upload_video(keys.video, result.chosen.data)
        self.event_bus.publish(ArtifactUploaded(session=session, artifact=session.video_artifact))
        token.raise_if_cancelled("upload_video")

        self._enter(session, "upload_thumbnail")
        session.thumbnail_artifact = self.sequencer.upload_thumbnail(keys.thumbnail, thumbnail.data)
        self.event_bus.publish(ArtifactUploaded(session=session, artifact=session.thumbnail_artifact))
        token.raise_if_cancelled("upload_thumbnail")

        self._enter(session, "commit", SessionState.COMMITTING)
        record = VideoRecord(
            user_id=profile.user_id,
            filename=input_file.name,
            storage_path=keys.video,
            thumbnail_path=keys.thumbnail,
            original_size=input_file.size_bytes,
            compressed_size=result.chosen.size_bytes,
            share_token=new_share_token(),
            user_name=profile.display_name or ANONYMOUS_NAME,
            user_avatar_url=profile.avatar_url,
        )
        token.raise_if_cancelled("commit")
        session.record = self.sequencer.commit_record(record)

        # Past this point the record exists; a late cancel no longer applies.
        self._transition(session, SessionState.COMPLETE)
        self.progress.complete()
        self.logger.info(
            f"SESSION_COMPLETE: {input_file.name} tier={result.tier.value} "
            f"original={input_file.size_bytes} final={result.chosen.size_bytes} share_token={record.share_token}"
        )
        self.event_bus.publish(SessionCompleted(session=session))

    def _finish_cancelled(self, session: UploadSession, stage: Optional[str]):
        self._transition(session, SessionState.CANCELLED)
        self.progress.set_label("Upload cancelled")
        orphans = [a.key for a in (session.video_artifact, session.thumbnail_artifact) if a is not None]
        self.logger.info(
            f"SESSION_CANCELLED: {session.input_file.name} stage={stage or self._current_stage}"
            + (f" orphaned={orphans}" if orphans else "")
        )
        self.event_bus.publish(SessionCancelled(session=session))

    def _finish_failed(self, session: UploadSession, stage: str, exc: BaseException, user_message: str):
        session.failed_stage = stage
        session.error_message = user_message
        self._transition(session, SessionState.FAILED)
        self.progress.set_label(user_message)
        chosen_size = session.chosen.size_bytes if session.chosen is not None else None
        orphans = [a.key for a in (session.video_artifact, session.thumbnail_artifact) if a is not None]
        self.logger.error(
            f"SESSION_FAILED: {session.input_file.name} stage={stage} "
            f"original={session.input_file.size_bytes} chosen={chosen_size} error={exc}"
            + (f" orphaned={orphans}" if orphans else "")
        )
        self.event_bus.publish(SessionFailed(session=session, error_message=user_message, stage=stage))
