import pytest
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from clipvault.config.models import AppConfig, MIB
from clipvault.domain.errors import DatabaseError, EncodeFailure, EngineLoadFailure, StorageError, UserCancelled
from clipvault.domain.events import EngineProgress
from clipvault.domain.models import UserProfile, VideoRecord
from clipvault.domain.repositories import ObjectStore, VideoRecordStore
from clipvault.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Default limits, no cancel grace period (keeps tests fast)."""
    return AppConfig(pipeline={"cancel_grace_s": 0.0})

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "clipvault.yaml"

    content = {
        'limits': {
            'commit_max_bytes': 40 * MIB,
            'store_max_bytes': 48 * MIB,
            'upload_max_bytes': 100 * MIB,
        },
        'encoding': {
            'standard': {'crf': 28, 'audio_bitrate': '128k'},
            'aggressive': {'crf': 36, 'audio_bitrate': '48k'},
        },
        'storage': {'bucket': 'clips-from-yaml'},
        'pipeline': {'cancel_grace_s': 0.25},
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# Fakes for engine, storage and database
# ============================================================================

class FakeEngine:
    """In-memory stand-in for TranscodeEngine.

    ``outputs`` maps a run label (standard / aggressive / thumbnail) to the
    bytes that run "produces". ``fail_on`` makes that run raise EncodeFailure.
    """

    def __init__(self, bus: EventBus, outputs: Dict[str, bytes], fail_on: Optional[str] = None,
                 fail_load: bool = False):
        self.bus = bus
        self.outputs = outputs
        self.fail_on = fail_on
        self.fail_load = fail_load
        self.files: Dict[str, bytes] = {}
        self.runs: List[str] = []
        self.run_args: Dict[str, List[str]] = {}
        self.acquired = False
        self.release_count = 0

    @property
    def loaded(self) -> bool:
        return self.acquired

    def acquire(self):
        if self.fail_load:
            raise EngineLoadFailure("ffmpeg missing", stage="load_engine")
        self.acquired = True
        return self

    def stage(self, name: str, data: bytes):
        self.files[name] = data

    def read(self, name: str) -> bytes:
        if name not in self.files:
            raise EncodeFailure(f"ffmpeg produced no {name}")
        return self.files[name]

    def exists(self, name: str) -> bool:
        return name in self.files

    def delete(self, name: str):
        self.files.pop(name, None)

    def run(self, args, token=None, label="ffmpeg"):
        self.runs.append(label)
        self.run_args[label] = list(args)
        self.bus.publish(EngineProgress(label=label, fraction=0.5))
        if token is not None and token.cancelled:
            raise UserCancelled(f"Cancelled during {label}", stage=label)
        if self.fail_on == label:
            raise EncodeFailure(f"ffmpeg exited with code 1 during {label}", stage=label)
        source = args[args.index("-i") + 1]
        if source not in self.files:
            raise EncodeFailure(f"missing input {source}", stage=label)
        self.files[args[-1]] = self.outputs[label]
        self.bus.publish(EngineProgress(label=label, fraction=1.0))

    def release(self):
        self.release_count += 1
        self.acquired = False


class FakeStore(ObjectStore):
    def __init__(self, fail_on_content_type: Optional[str] = None):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.calls: List[str] = []
        self.fail_on_content_type = fail_on_content_type

    def store(self, key: str, data: bytes, content_type: str) -> None:
        self.calls.append(key)
        if content_type == self.fail_on_content_type:
            raise StorageError(f"PutObject failed for {key}")
        self.objects[key] = data
        self.content_types[key] = content_type

    def sign(self, key: str, ttl_seconds: int = 3600) -> str:
        return f"https://r2.example/{key}?ttl={ttl_seconds}"

    def remove(self, key: str) -> None:
        self.objects.pop(key, None)


class FakeRecords(VideoRecordStore):
    def __init__(self, fail: bool = False):
        self.records: List[VideoRecord] = []
        self.fail = fail

    def insert_video_record(self, record: VideoRecord) -> None:
        if self.fail:
            raise DatabaseError("insert rejected")
        self.records.append(record)

    def find_by_share_token(self, share_token: str) -> Optional[VideoRecord]:
        return next((r for r in self.records if r.share_token == share_token), None)

    def delete_by_share_token(self, share_token: str) -> None:
        self.records = [r for r in self.records if r.share_token != share_token]


@pytest.fixture
def fake_store():
    return FakeStore()

@pytest.fixture
def fake_records():
    return FakeRecords()

@pytest.fixture
def profile():
    return UserProfile(user_id="user-123", display_name="Fox", avatar_url="https://cdn.example/fox.png")

# ============================================================================
# Input file fixtures
# ============================================================================

@pytest.fixture
def make_video(tmp_path):
    """Factory writing a fake video file of ``size`` bytes."""
    def _make(name: str = "clip.mp4", size: int = 1024) -> Path:
        path = tmp_path / name
        path.write_bytes(b"v" * size)
        return path
    return _make

# ============================================================================
# Pipeline factory
# ============================================================================

@pytest.fixture
def make_pipeline(sample_config, event_bus):
    """Builds an UploadPipeline wired to fakes.

    Returns ``(pipeline, engines, store, records)``; ``engines`` collects every
    FakeEngine the pipeline creates.
    """
    from clipvault.pipeline.orchestrator import UploadPipeline

    def _make(outputs: Optional[Dict[str, bytes]] = None, config: Optional[AppConfig] = None,
              store_fail_on: Optional[str] = None, records_fail: bool = False, **engine_kwargs):
        outputs = outputs or {"standard": b"s" * 100, "aggressive": b"a" * 50, "thumbnail": b"jpeg"}
        engines: List[FakeEngine] = []
        store = FakeStore(fail_on_content_type=store_fail_on)
        records = FakeRecords(fail=records_fail)

        def factory():
            engine = FakeEngine(event_bus, outputs, **engine_kwargs)
            engines.append(engine)
            return engine

        pipeline = UploadPipeline(config or sample_config, event_bus, store, records, engine_factory=factory)
        return pipeline, engines, store, records

    return _make

@pytest.fixture
def make_engine(event_bus):
    """Factory for a standalone FakeEngine (acquired, with ``input.mp4`` staged)."""
    def _make(outputs: Dict[str, bytes], original: bytes = b"o" * 100, **kwargs) -> FakeEngine:
        engine = FakeEngine(event_bus, outputs, **kwargs)
        engine.acquire()
        engine.stage("input.mp4", original)
        return engine
    return _make
