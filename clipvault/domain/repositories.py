from abc import ABC, abstractmethod
from typing import Optional
from clipvault.domain.models import VideoRecord


class ObjectStore(ABC):
    @abstractmethod
    def store(self, key: str, data: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def sign(self, key: str, ttl_seconds: int = 3600) -> str:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class VideoRecordStore(ABC):
    @abstractmethod
    def insert_video_record(self, record: VideoRecord) -> None:
        pass

    @abstractmethod
    def find_by_share_token(self, share_token: str) -> Optional[VideoRecord]:
        pass

    @abstractmethod
    def delete_by_share_token(self, share_token: str) -> None:
        pass
