import threading
import logging
from typing import Optional
from clipvault.domain.errors import UserCancelled


class CancellationToken:
    """Once-only cancel flag shared between one session and whoever may abort it.

    A new token is created for every session and passed explicitly to each
    stage, so a late cancel aimed at a finished session can never reach the
    next one.
    """

    def __init__(self):
        self._event = threading.Event()
        self._stage: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Sets the flag. Returns False if it was already set."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    def raise_if_cancelled(self, stage: str):
        """Suspension-point check: raises UserCancelled once the flag is set."""
        if self._event.is_set():
            if self._stage is None:
                self._stage = stage
                self.logger.info(f"CANCEL_OBSERVED: stage={stage}")
            raise UserCancelled(f"Cancelled during {stage}", stage=stage)

    @property
    def observed_at(self) -> Optional[str]:
        """Stage name where the cancel was first observed, if any."""
        return self._stage
