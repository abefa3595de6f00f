"""Supabase-backed store for committed video records."""

import logging
from typing import Any, Optional
from postgrest.exceptions import APIError
from supabase import Client, create_client
from clipvault.config.models import DatabaseConfig
from clipvault.domain.errors import DatabaseError
from clipvault.domain.models import VideoRecord
from clipvault.domain.repositories import VideoRecordStore


class SupabaseVideoRepository(VideoRecordStore):
    def __init__(self, config: DatabaseConfig, client: Optional[Any] = None):
        self.table = config.table
        self.logger = logging.getLogger(__name__)
        if client is not None:
            self.client = client
        else:
            if not config.url or not config.key:
                raise DatabaseError("Supabase credentials not found (need SUPABASE_URL and SUPABASE_ANON_KEY)")
            self.client: Client = create_client(config.url, config.key)

    def insert_video_record(self, record: VideoRecord) -> None:
        try:
            self.client.table(self.table).insert(record.model_dump()).execute()
        except APIError as exc:
            self.logger.error(f"INSERT_FAILED: {record.storage_path}: {exc}")
            raise DatabaseError(f"Failed to insert video record: {exc}") from exc
        self.logger.info(f"INSERTED: {record.storage_path} share_token={record.share_token}")

    def find_by_share_token(self, share_token: str) -> Optional[VideoRecord]:
        try:
            res = (
                self.client
                .table(self.table)
                .select("*")
                .eq("share_token", share_token)
                .limit(1)
                .execute()
            )
        except APIError as exc:
            raise DatabaseError(f"Failed to look up share token: {exc}") from exc

        rows = res.data or []
        if not rows:
            return None
        return VideoRecord.model_validate(rows[0])

    def delete_by_share_token(self, share_token: str) -> None:
        try:
            self.client.table(self.table).delete().eq("share_token", share_token).execute()
        except APIError as exc:
            raise DatabaseError(f"Failed to delete video record: {exc}") from exc
        self.logger.info(f"DELETED: share_token={share_token}")
