import logging
from typing import List
from clipvault.config.models import ThumbnailConfig
from clipvault.domain.errors import EncodeFailure
from clipvault.domain.models import Thumbnail
from clipvault.infrastructure.engine import TranscodeEngine
from clipvault.pipeline.cancellation import CancellationToken

THUMBNAIL_OUTPUT = "thumbnail.jpg"


def build_thumbnail_args(config: ThumbnailConfig, source_name: str, output_name: str = THUMBNAIL_OUTPUT) -> List[str]:
    """First frame, scaled down and letterboxed to a fixed canvas."""
    w, h = config.width, config.height
    return [
        "-i", source_name,
        "-ss", "0",
        "-vframes", "1",
        "-f", "image2",
        "-vf", f"scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
        "-q:v", str(config.quality),
        "-threads", "0",
        "-y",
        output_name,
    ]


class Thumbnailer:
    def __init__(self, config: ThumbnailConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def extract(self, engine: TranscodeEngine, source_name: str, token: CancellationToken) -> Thumbnail:
        """Extracts one JPEG still from ``source_name`` (the chosen output)."""
        engine.run(build_thumbnail_args(self.config, source_name), token, label="thumbnail")
        token.raise_if_cancelled("thumbnail")
        data = engine.read(THUMBNAIL_OUTPUT)
        token.raise_if_cancelled("read_thumbnail")
        if not data:
            raise EncodeFailure(f"Thumbnail from {source_name} is empty", stage="thumbnail")
        self.logger.info(f"THUMBNAIL: {source_name} -> {len(data)} bytes")
        return Thumbnail(data=data)
