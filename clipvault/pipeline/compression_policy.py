"""Size-adaptive compression policy.

Compression is not guaranteed to shrink a file: already-compressed or very
short clips can grow when re-encoded. The policy therefore always compares the
standard encode against the original before trusting it, and only falls back
to the aggressive tier when the standard encode misses the commit ceiling.

Decision table (sizes in bytes, thresholds inclusive):

    original < standard and original <= store_max  -> ORIGINAL
    standard <= commit_max                         -> STANDARD
    otherwise                                      -> AGGRESSIVE (kept even if still over)
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional
from clipvault.config.models import EncodeTier, EncodingConfig, LimitsConfig
from clipvault.domain.models import EncodeAttempt, Tier
from clipvault.infrastructure.engine import TranscodeEngine
from clipvault.pipeline.cancellation import CancellationToken

STANDARD_OUTPUT = "output.mp4"
AGGRESSIVE_OUTPUT = "output2.mp4"


def select_tier(original_size: int, standard_size: int, limits: LimitsConfig) -> Tier:
    """Pure tier decision from the original and standard-encode sizes."""
    if original_size < standard_size and original_size <= limits.store_max_bytes:
        return Tier.ORIGINAL
    if standard_size <= limits.commit_max_bytes:
        return Tier.STANDARD
    return Tier.AGGRESSIVE


def build_encode_args(tier: EncodeTier, input_name: str, output_name: str) -> List[str]:
    """H.264/AAC MP4 with faststart so Discord can embed it."""
    args = [
        "-i", input_name,
        "-c:v", "libx264",
        "-crf", str(tier.crf),
        "-preset", tier.preset,
    ]
    if tier.tune:
        args.extend(["-tune", tier.tune])
    args.extend([
        "-c:a", "aac",
        "-b:a", tier.audio_bitrate,
        "-movflags", "+faststart",
        "-threads", "0",
        "-y",
        output_name,
    ])
    return args


@dataclass
class CompressionResult:
    chosen: EncodeAttempt
    source_name: str  # engine file the thumbnail is taken from
    standard_size: int
    aggressive_size: Optional[int] = None

    @property
    def tier(self) -> Tier:
        return self.chosen.tier


class CompressionPolicy:
    def __init__(self, encoding: EncodingConfig, limits: LimitsConfig):
        self.encoding = encoding
        self.limits = limits
        self.logger = logging.getLogger(__name__)

    def compress(
        self,
        engine: TranscodeEngine,
        input_name: str,
        original: bytes,
        token: CancellationToken,
        on_stage: Optional[Callable[[str], None]] = None,
    ) -> CompressionResult:
        """Runs the standard tier, then decides which output to keep.

        ``original`` is the unmodified input (already staged as ``input_name``).
        ``on_stage`` is called with ``"decide"`` once the standard encode is read
        and with ``"aggressive"`` before the aggressive re-encode starts.
        """
        engine.run(build_encode_args(self.encoding.standard, input_name, STANDARD_OUTPUT), token, label="standard")
        token.raise_if_cancelled("standard")
        standard = engine.read(STANDARD_OUTPUT)
        token.raise_if_cancelled("read_standard")
        if on_stage:
            on_stage("decide")

        original_size = len(original)
        tier = select_tier(original_size, len(standard), self.limits)
        self.logger.info(
            f"TIER_DECISION: original={original_size} standard={len(standard)} "
            f"commit_max={self.limits.commit_max_bytes} store_max={self.limits.store_max_bytes} -> {tier.value}"
        )

        if tier == Tier.ORIGINAL:
            return CompressionResult(
                chosen=EncodeAttempt(data=original, tier=Tier.ORIGINAL),
                # Thumbnail comes from the standard encode, never the raw input.
                source_name=STANDARD_OUTPUT,
                standard_size=len(standard),
            )
        if tier == Tier.STANDARD:
            return CompressionResult(
                chosen=EncodeAttempt(data=standard, tier=Tier.STANDARD),
                source_name=STANDARD_OUTPUT,
                standard_size=len(standard),
            )

        if on_stage:
            on_stage("aggressive")
        engine.run(build_encode_args(self.encoding.aggressive, STANDARD_OUTPUT, AGGRESSIVE_OUTPUT), token, label="aggressive")
        token.raise_if_cancelled("aggressive")
        aggressive = engine.read(AGGRESSIVE_OUTPUT)
        token.raise_if_cancelled("read_aggressive")

        if len(aggressive) > self.limits.commit_max_bytes:
            # No retry past the aggressive tier.
            self.logger.warning(
                f"AGGRESSIVE_OVER_CEILING: {len(aggressive)} > {self.limits.commit_max_bytes}, uploading anyway"
            )
        return CompressionResult(
            chosen=EncodeAttempt(data=aggressive, tier=Tier.AGGRESSIVE),
            source_name=AGGRESSIVE_OUTPUT,
            standard_size=len(standard),
            aggressive_size=len(aggressive),
        )
