import logging
import uuid
from clipvault.domain.errors import CommitFailure, DatabaseError, StorageError, UploadFailure
from clipvault.domain.models import RemoteArtifact, VideoRecord
from clipvault.domain.repositories import ObjectStore, VideoRecordStore

VIDEO_CONTENT_TYPE = "video/mp4"
THUMBNAIL_CONTENT_TYPE = "image/jpeg"
ANONYMOUS_NAME = "Anonymous User"


def new_share_token() -> str:
    return str(uuid.uuid4())


class UploadSequencer:
    """Video upload, thumbnail upload, record commit. Strictly in that order.

    There is no compensation: when a later step fails, artifacts stored by
    earlier steps stay in the bucket without a record (orphans are left to an
    external cleanup job).
    """

    def __init__(self, store: ObjectStore, records: VideoRecordStore):
        self.store = store
        self.records = records
        self.logger = logging.getLogger(__name__)

    def _upload(self, stage: str, key: str, data: bytes, content_type: str) -> RemoteArtifact:
        try:
            self.store.store(key, data, content_type)
        except StorageError as exc:
            raise UploadFailure(str(exc), stage=stage) from exc
        return RemoteArtifact(key=key, content_type=content_type, size_bytes=len(data))

    def upload_video(self, key: str, data: bytes) -> RemoteArtifact:
        return self._upload("upload_video", key, data, VIDEO_CONTENT_TYPE)

    def upload_thumbnail(self, key: str, data: bytes) -> RemoteArtifact:
        return self._upload("upload_thumbnail", key, data, THUMBNAIL_CONTENT_TYPE)

    def commit_record(self, record: VideoRecord) -> VideoRecord:
        try:
            self.records.insert_video_record(record)
        except DatabaseError as exc:
            self.logger.warning(
                f"ORPHANED_ARTIFACTS: {record.storage_path}, {record.thumbnail_path} (commit failed)"
            )
            raise CommitFailure(str(exc), stage="commit") from exc
        return record
