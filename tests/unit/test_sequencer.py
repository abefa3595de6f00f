import uuid
import pytest
from unittest.mock import MagicMock
from clipvault.domain.errors import CommitFailure, DatabaseError, StorageError, UploadFailure
from clipvault.domain.models import VideoRecord
from clipvault.pipeline.sequencer import UploadSequencer, new_share_token


def _record():
    return VideoRecord(
        user_id="u1",
        filename="clip.mp4",
        storage_path="u1/1_clip.mp4",
        thumbnail_path="u1/1_clip_thumb.jpg",
        original_size=100,
        compressed_size=40,
        share_token=new_share_token(),
    )


def test_share_token_is_uuid4():
    token = new_share_token()
    assert uuid.UUID(token).version == 4
    assert token != new_share_token()


def test_upload_video_uses_mp4_content_type():
    store = MagicMock()
    artifact = UploadSequencer(store, MagicMock()).upload_video("u1/1_clip.mp4", b"x" * 40)

    store.store.assert_called_once_with("u1/1_clip.mp4", b"x" * 40, "video/mp4")
    assert artifact.size_bytes == 40
    assert artifact.content_type == "video/mp4"


def test_upload_thumbnail_uses_jpeg_content_type():
    store = MagicMock()
    artifact = UploadSequencer(store, MagicMock()).upload_thumbnail("u1/1_clip_thumb.jpg", b"j")
    assert store.store.call_args[0][2] == "image/jpeg"
    assert artifact.key == "u1/1_clip_thumb.jpg"


def test_storage_error_becomes_upload_failure_with_stage():
    store = MagicMock()
    store.store.side_effect = StorageError("503 Slow Down")

    with pytest.raises(UploadFailure) as exc_info:
        UploadSequencer(store, MagicMock()).upload_thumbnail("k", b"j")
    assert exc_info.value.stage == "upload_thumbnail"
    assert isinstance(exc_info.value.__cause__, StorageError)


def test_commit_record_inserts_once():
    records = MagicMock()
    record = _record()
    assert UploadSequencer(MagicMock(), records).commit_record(record) is record
    records.insert_video_record.assert_called_once_with(record)


def test_database_error_becomes_commit_failure_without_cleanup(caplog):
    store = MagicMock()
    records = MagicMock()
    records.insert_video_record.side_effect = DatabaseError("duplicate key")

    with caplog.at_level("WARNING"):
        with pytest.raises(CommitFailure) as exc_info:
            UploadSequencer(store, records).commit_record(_record())

    assert exc_info.value.stage == "commit"
    assert not store.remove.called
    assert "ORPHANED_ARTIFACTS" in caplog.text
