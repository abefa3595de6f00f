"""Maps pipeline milestones onto one monotonic 0-100 percentage.

Each stage owns a slice of the bar. EngineProgress events for the running
ffmpeg command are scaled into that slice, so the engine never needs to know
where its work sits in the whole upload.
"""

import logging
import threading
from typing import Dict, Optional, Tuple
from clipvault.domain.events import EngineProgress, ProgressUpdated
from clipvault.domain.models import UploadSession
from clipvault.infrastructure.event_bus import EventBus

# stage -> (start %, end %, label)
STAGE_RANGES: Dict[str, Tuple[int, int, str]] = {
    "load_engine": (0, 10, "Loading video processor..."),
    "stage_input": (10, 12, "Preparing video..."),
    "standard": (12, 80, "Compressing video..."),
    "decide": (80, 82, "Checking compressed size..."),
    "aggressive": (82, 87, "File still too large, applying extra compression..."),
    "thumbnail": (87, 90, "Generating thumbnail..."),
    "upload_video": (90, 92, "Uploading video..."),
    "upload_thumbnail": (92, 95, "Uploading thumbnail..."),
    "commit": (95, 100, "Saving metadata..."),
}


class ProgressReporter:
    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        self.percent = 0
        self.label = ""
        self._stage: Optional[str] = None
        self._session: Optional[UploadSession] = None
        # Re-entered when a SIGINT handler cancels while the pipeline thread holds it
        self._lock = threading.RLock()
        self.event_bus.subscribe(EngineProgress, self._on_engine_progress)

    def reset(self, session: Optional[UploadSession] = None):
        """Starts a new session at 0%. The only way the percentage goes down."""
        with self._lock:
            self.percent = 0
            self.label = ""
            self._stage = None
            self._session = session
        self._publish()

    def enter(self, stage: str, label: Optional[str] = None):
        start, _end, default_label = STAGE_RANGES[stage]
        with self._lock:
            self._stage = stage
            self.label = label or default_label
            self.percent = max(self.percent, start)
        self._publish()

    def advance(self, fraction: float):
        """Moves within the current stage's slice; ``fraction`` is clamped to [0, 1]."""
        with self._lock:
            if self._stage is None:
                return
            start, end, _label = STAGE_RANGES[self._stage]
            fraction = min(1.0, max(0.0, fraction))
            target = start + int(round((end - start) * fraction))
            if target <= self.percent:
                return
            self.percent = target
        self._publish()

    def complete(self, label: str = "Upload complete!"):
        with self._lock:
            self._stage = None
            self.percent = 100
            self.label = label
        self._publish()

    def set_label(self, label: str):
        """Changes the label only (cancel / failure notices)."""
        with self._lock:
            self.label = label
        self._publish()

    def _on_engine_progress(self, event: EngineProgress):
        if event.label == self._stage:
            self.advance(event.fraction)

    def _publish(self):
        session = self._session
        if session is not None:
            session.progress_percent = self.percent
            session.progress_label = self.label
        self.event_bus.publish(ProgressUpdated(percent=self.percent, label=self.label))
