import re
import shutil
import logging
import queue
import subprocess
import tempfile
import threading
import time
from collections import deque
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING
from clipvault.domain.errors import EncodeFailure, EngineLoadFailure, UserCancelled
from clipvault.domain.events import EngineProgress
from clipvault.infrastructure.event_bus import EventBus

if TYPE_CHECKING:
    from clipvault.pipeline.cancellation import CancellationToken

# Regexes for ffmpeg's banner and status lines
DURATION_REGEX = re.compile(r"Duration: (\d+):(\d+):(\d+(?:\.\d+)?)")
TIME_REGEX = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")


def _to_seconds(match: "re.Match[str]") -> float:
    h, m, s = map(float, match.groups())
    return h * 3600 + m * 60 + s


class TranscodeEngine:
    """One ffmpeg engine instance with a private working directory.

    Lifecycle: ``acquire()`` checks that the binary runs and creates the
    working directory, ``stage``/``run``/``read`` operate on files inside it,
    ``release()`` kills any running process and removes the directory.
    ``release()`` is idempotent and never raises, so it is safe in ``finally``
    blocks and as ``__exit__``.
    """

    def __init__(self, event_bus: EventBus, ffmpeg_binary: str = "ffmpeg", debug: bool = False):
        self.event_bus = event_bus
        self.ffmpeg_binary = ffmpeg_binary
        self.debug = debug
        self.logger = logging.getLogger(__name__)
        self._workdir: Optional[Path] = None
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._workdir is not None

    @property
    def workdir(self) -> Optional[Path]:
        return self._workdir

    def acquire(self) -> "TranscodeEngine":
        if self._workdir is not None:
            return self

        try:
            res = subprocess.run(
                [self.ffmpeg_binary, "-hide_banner", "-version"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise EngineLoadFailure(f"Cannot start {self.ffmpeg_binary}: {exc}", stage="load_engine") from exc
        if res.returncode != 0:
            raise EngineLoadFailure(
                f"{self.ffmpeg_binary} -version exited with code {res.returncode}",
                stage="load_engine",
            )

        self._workdir = Path(tempfile.mkdtemp(prefix="clipvault-"))
        version_line = (res.stdout or "").splitlines()[0] if res.stdout else "unknown"
        self.logger.info(f"ENGINE_LOADED: {version_line} workdir={self._workdir}")
        return self

    def _path(self, name: str) -> Path:
        if self._workdir is None:
            raise RuntimeError("Engine not acquired")
        if not name or Path(name).name != name:
            raise ValueError(f"Invalid engine file name: {name!r}")
        return self._workdir / name

    def stage(self, name: str, data: bytes):
        """Writes ``data`` into the engine's working directory as ``name``."""
        self._path(name).write_bytes(data)

    def read(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise EncodeFailure(f"ffmpeg produced no {name}") from exc

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def delete(self, name: str):
        self._path(name).unlink(missing_ok=True)

    def run(self, args: List[str], token: Optional["CancellationToken"] = None, label: str = "ffmpeg"):
        """Runs ffmpeg with ``args`` inside the working directory.

        Publishes EngineProgress as ``time=`` advances against the input's
        ``Duration:``. Polls ``token`` every 100 ms and terminates ffmpeg when it
        is cancelled, raising UserCancelled. A non-zero exit raises EncodeFailure.
        """
        if self._workdir is None:
            raise RuntimeError("Engine not acquired")

        cmd = [self.ffmpeg_binary, "-hide_banner", "-nostdin", *args]
        start_time = time.monotonic()
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD[{label}]: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(self._workdir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1,
            )
        except OSError as exc:
            raise EncodeFailure(f"Cannot start ffmpeg for {label}: {exc}", stage=label) from exc

        with self._lock:
            self._process = process

        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()
        tail: "deque[str]" = deque(maxlen=20)

        def _reader():
            if not process.stdout:
                output_queue.put(None)
                return
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        total_duration = 0.0
        last_fraction = 0.0
        try:
            while True:
                if token is not None and token.cancelled:
                    self.logger.info(f"FFMPEG_INTERRUPTED[{label}]: cancel requested")
                    self._terminate(process)
                    raise UserCancelled(f"Cancelled during {label}", stage=label)

                try:
                    line = output_queue.get(timeout=0.1)
                except queue.Empty:
                    if process.poll() is not None:
                        break
                    continue

                if line is None:
                    break
                tail.append(line.rstrip())

                if total_duration <= 0:
                    match = DURATION_REGEX.search(line)
                    if match:
                        total_duration = _to_seconds(match)
                        continue

                match = TIME_REGEX.search(line)
                if match and total_duration > 0:
                    fraction = min(1.0, _to_seconds(match) / total_duration)
                    if fraction > last_fraction:
                        last_fraction = fraction
                        self.event_bus.publish(EngineProgress(label=label, fraction=fraction))

            process.wait()
            # Lines the reader queued after poll() saw the exit
            reader_thread.join(timeout=1.0)
            while True:
                try:
                    line = output_queue.get_nowait()
                except queue.Empty:
                    break
                if line is not None:
                    tail.append(line.rstrip())
        finally:
            with self._lock:
                self._process = None

        elapsed = time.monotonic() - start_time
        if process.returncode != 0:
            detail = tail[-1] if tail else "no output"
            self.logger.error(f"FFMPEG_END[{label}]: status=failed code={process.returncode} elapsed={elapsed:.2f}s last={detail}")
            raise EncodeFailure(f"ffmpeg exited with code {process.returncode} during {label}: {detail}", stage=label)

        if last_fraction < 1.0:
            self.event_bus.publish(EngineProgress(label=label, fraction=1.0))
        self.logger.info(f"FFMPEG_END[{label}]: status=completed elapsed={elapsed:.2f}s")

    def _terminate(self, process: subprocess.Popen):
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def release(self):
        """Stops any running ffmpeg and removes the working directory. Safe to call repeatedly."""
        with self._lock:
            process = self._process
            self._process = None
        if process is not None and process.poll() is None:
            try:
                self._terminate(process)
            except OSError as exc:
                self.logger.warning(f"ENGINE_RELEASE: terminate failed: {exc}")

        workdir = self._workdir
        self._workdir = None
        if workdir is not None:
            shutil.rmtree(workdir, ignore_errors=True)
            self.logger.info(f"ENGINE_RELEASED: {workdir}")

    def __enter__(self) -> "TranscodeEngine":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
