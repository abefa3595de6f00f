import re
import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_stem(filename: str) -> str:
    """Filename without extension, reduced to ``[A-Za-z0-9._-]``."""
    stem = PurePath(filename).stem
    stem = _UNSAFE.sub("_", stem).strip("._")
    return stem or "video"


@dataclass(frozen=True)
class ArtifactKeys:
    video: str
    thumbnail: str


def build_keys(user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> ArtifactKeys:
    """Storage keys for one session: ``{user}/{ms}_{stem}.mp4`` and ``..._thumb.jpg``.

    Both keys share one timestamp so the pair stays recognisable.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    base = f"{user_id}/{timestamp_ms}_{sanitize_stem(filename)}"
    return ArtifactKeys(video=f"{base}.mp4", thumbnail=f"{base}_thumb.jpg")
