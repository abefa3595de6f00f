from unittest.mock import MagicMock
from typer.testing import CliRunner

from clipvault import main as clipvault_main
from clipvault.config.models import AppConfig
from clipvault.domain.errors import InputRejected, StorageError
from clipvault.domain.models import SessionState, VideoRecord


class DummyKeyboard:
    def __init__(self, _bus):
        pass

    def start(self):
        pass

    def stop(self):
        pass


class DummyView:
    def __init__(self, _bus):
        pass

    def __enter__(self):
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        return False


def _patch_environment(monkeypatch, created, store=None):
    def fake_load_config(path):
        created["config_path"] = path
        return AppConfig()

    def fake_setup_logging(path, debug=False, log_path=None):
        created["log_debug"] = debug
        created["log_path"] = log_path
        return MagicMock()

    monkeypatch.setattr(clipvault_main, "load_config", fake_load_config)
    monkeypatch.setattr(clipvault_main, "setup_logging", fake_setup_logging)
    monkeypatch.setattr(clipvault_main, "build_storage", lambda _config: store or MagicMock())
    monkeypatch.setattr(clipvault_main, "build_repository", lambda _config: MagicMock())
    monkeypatch.setattr(clipvault_main, "KeyboardListener", DummyKeyboard)
    monkeypatch.setattr(clipvault_main, "ConsoleProgressView", DummyView)


def _pipeline_returning(state, created, record=None, reject=None):
    class DummyPipeline:
        def __init__(self, config, event_bus, store, records):
            created["config"] = config

        def validate_input(self, path):
            if reject is not None:
                raise reject

        def run(self, path, profile):
            created["run_path"] = path
            created["profile"] = profile
            session = MagicMock()
            session.state = state
            session.record = record
            return session

    return DummyPipeline


def test_upload_complete_prints_share_token(tmp_path, monkeypatch):
    created = {}
    _patch_environment(monkeypatch, created)
    record = VideoRecord(
        user_id="u1", filename="clip.mp4", storage_path="u1/1_clip.mp4", thumbnail_path="u1/1_clip_thumb.jpg",
        original_size=10, compressed_size=5, share_token="share-abc",
    )
    monkeypatch.setattr(clipvault_main, "UploadPipeline", _pipeline_returning(SessionState.COMPLETE, created, record))

    video = tmp_path / "clip.mp4"
    video.write_bytes(b"v")
    result = CliRunner().invoke(
        clipvault_main.app,
        ["upload", str(video), "--user-id", "u1", "--name", "Fox", "--debug"],
    )

    assert result.exit_code == 0
    assert "share-abc" in result.output
    assert created["profile"].user_id == "u1"
    assert created["profile"].display_name == "Fox"
    assert created["log_debug"] is True


def test_upload_cancelled_exits_130(tmp_path, monkeypatch):
    created = {}
    _patch_environment(monkeypatch, created)
    monkeypatch.setattr(clipvault_main, "UploadPipeline", _pipeline_returning(SessionState.CANCELLED, created))

    video = tmp_path / "clip.mp4"
    video.write_bytes(b"v")
    result = CliRunner().invoke(clipvault_main.app, ["upload", str(video), "-u", "u1"])

    assert result.exit_code == 130


def test_upload_failed_exits_1(tmp_path, monkeypatch):
    created = {}
    _patch_environment(monkeypatch, created)
    monkeypatch.setattr(clipvault_main, "UploadPipeline", _pipeline_returning(SessionState.FAILED, created))

    video = tmp_path / "clip.mp4"
    video.write_bytes(b"v")
    result = CliRunner().invoke(clipvault_main.app, ["upload", str(video), "-u", "u1"])

    assert result.exit_code == 1


def test_upload_rejected_input_exits_1(tmp_path, monkeypatch):
    created = {}
    _patch_environment(monkeypatch, created)
    reject = InputRejected("Not a video", stage="input")
    monkeypatch.setattr(clipvault_main, "UploadPipeline", _pipeline_returning(SessionState.IDLE, created, reject=reject))

    doc = tmp_path / "notes.txt"
    doc.write_text("hello")
    result = CliRunner().invoke(clipvault_main.app, ["upload", str(doc), "-u", "u1"])

    assert result.exit_code == 1
    assert "Please select a video file" in result.output
    assert "run_path" not in created


def test_upload_requires_user_id(tmp_path):
    result = CliRunner().invoke(clipvault_main.app, ["upload", str(tmp_path / "clip.mp4")])
    assert result.exit_code != 0


def test_missing_config_exits(tmp_path):
    result = CliRunner().invoke(
        clipvault_main.app,
        ["sign", "u1/1_clip.mp4", "--config", str(tmp_path / "missing.yaml")],
    )
    assert result.exit_code == 1
    assert "not found" in result.output.lower()


def test_sign_prints_url(monkeypatch):
    created = {}
    store = MagicMock()
    store.sign.return_value = "https://r2.example/u1/1_clip.mp4?sig"
    _patch_environment(monkeypatch, created, store=store)

    result = CliRunner().invoke(clipvault_main.app, ["sign", "u1/1_clip.mp4", "--ttl", "60"])

    assert result.exit_code == 0
    assert "https://r2.example/u1/1_clip.mp4?sig" in result.output
    store.sign.assert_called_once_with("u1/1_clip.mp4", 60)


def test_remove_reports_storage_error(monkeypatch):
    created = {}
    store = MagicMock()
    store.remove.side_effect = StorageError("DeleteObject failed")
    _patch_environment(monkeypatch, created, store=store)

    result = CliRunner().invoke(clipvault_main.app, ["remove", "u1/1_clip.mp4"])

    assert result.exit_code == 1
    assert "DeleteObject failed" in result.output


def test_remove_success(monkeypatch):
    created = {}
    store = MagicMock()
    _patch_environment(monkeypatch, created, store=store)

    result = CliRunner().invoke(clipvault_main.app, ["remove", "u1/1_clip.mp4"])

    assert result.exit_code == 0
    assert "Removed u1/1_clip.mp4" in result.output
    store.remove.assert_called_once_with("u1/1_clip.mp4")
