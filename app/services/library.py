"""Add, edit and delete orchestration for catalog records."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..errors import MediaRequired, NotFound, ValidationError
from ..models import CatalogRecord, MediaEntry, StoredEntry
from ..utils import first_error_message
from .catalog_store import CatalogStore
from .uploads import MEDIA_FIELD, POSTER_FIELD, RemovalResult, StoredUpload, UploadRouter

logger = logging.getLogger(__name__)


class CatalogManager:
    """Coordinates the catalog store with uploaded asset files.

    Every mutation holds a single lock, so read-modify-write cycles on the
    store never interleave within this process.
    """

    def __init__(
        self,
        store: CatalogStore,
        uploads: UploadRouter,
        *,
        cleanup_rejected_uploads: bool = True,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._uploads = uploads
        self._cleanup_rejected_uploads = cleanup_rejected_uploads
        self._log = log or logger
        self._lock = asyncio.Lock()

    @property
    def store(self) -> CatalogStore:
        return self._store

    @property
    def uploads(self) -> UploadRouter:
        return self._uploads

    async def list_records(self) -> list[StoredEntry]:
        self._store.ensure_exists()
        return self._store.read()

    async def add(
        self,
        fields: Mapping[str, Any],
        uploads: Mapping[str, StoredUpload],
    ) -> CatalogRecord:
        try:
            record = await self._add(fields, uploads)
        except Exception:
            self._reject_uploads(uploads)
            raise
        self._log.info("Added catalog record %s (%s)", record.id, record.title)
        return record

    async def _add(
        self,
        fields: Mapping[str, Any],
        uploads: Mapping[str, StoredUpload],
    ) -> CatalogRecord:
        media = uploads.get(MEDIA_FIELD)
        if media is None:
            raise MediaRequired()

        poster = uploads.get(POSTER_FIELD)
        entry = self._build_entry(
            fields,
            file_path=media.site_path,
            poster=poster.site_path if poster else fields.get("poster"),
        )

        async with self._lock:
            self._store.ensure_exists()
            self._store.backup()
            records = self._store.read()
            record = CatalogRecord.from_entry(entry, self._store.next_id(records))
            records.append(record)
            self._store.write(records)
        return record

    async def edit(
        self,
        record_id: int,
        fields: Mapping[str, Any],
        uploads: Mapping[str, StoredUpload],
    ) -> CatalogRecord:
        try:
            record = await self._edit(record_id, fields, uploads)
        except Exception:
            self._reject_uploads(uploads)
            raise
        self._log.info("Updated catalog record %s (%s)", record.id, record.title)
        return record

    async def _edit(
        self,
        record_id: int,
        fields: Mapping[str, Any],
        uploads: Mapping[str, StoredUpload],
    ) -> CatalogRecord:
        media = uploads.get(MEDIA_FIELD)
        poster = uploads.get(POSTER_FIELD)

        async with self._lock:
            self._store.ensure_exists()
            records = self._store.read()
            index = self._find_index(records, record_id)
            if index is None:
                raise NotFound()

            previous = records[index]
            entry = self._build_entry(
                fields,
                file_path=(
                    media.site_path
                    if media
                    else fields.get("file_path") or previous.file_path
                ),
                poster=(
                    poster.site_path
                    if poster
                    else fields.get("poster") or previous.poster
                ),
            )

            self._store.backup()
            record = CatalogRecord.from_entry(entry, record_id)
            records[index] = record
            self._store.write(records)

            # Old assets go only once the replacement is persisted.
            still_referenced = self._referenced_paths(records)
            for old_path in previous.asset_paths():
                if old_path not in still_referenced:
                    self._release(old_path)
        return record

    async def delete(self, record_id: int) -> dict[str, str]:
        async with self._lock:
            self._store.ensure_exists()
            records = self._store.read()
            index = self._find_index(records, record_id)
            if index is None:
                raise NotFound()

            removed = records[index]
            remaining = records[:index] + records[index + 1:]
            still_referenced = self._referenced_paths(remaining)
            for path in removed.asset_paths():
                if path not in still_referenced:
                    self._release(path)

            self._store.backup()
            self._store.write(remaining)

        self._log.info("Deleted catalog record %s (%s)", removed.id, removed.title)
        return {"message": "Movie deleted"}

    @staticmethod
    def _build_entry(
        fields: Mapping[str, Any],
        *,
        file_path: str | None,
        poster: str | None,
    ) -> MediaEntry:
        try:
            return MediaEntry.from_form(fields, file_path=file_path, poster=poster)
        except PydanticValidationError as exc:
            raise ValidationError(first_error_message(exc)) from exc

    def _reject_uploads(self, uploads: Mapping[str, StoredUpload]) -> None:
        if not uploads:
            return
        if not self._cleanup_rejected_uploads:
            self._log.warning(
                "Leaving %d rejected upload(s) on disk", len(uploads)
            )
            return
        self._uploads.discard(uploads.values())

    def _release(self, site_path: str) -> RemovalResult:
        result = self._uploads.remove(site_path)
        if result is RemovalResult.FAILED:
            self._log.warning("Orphaned file left behind: %s", site_path)
        return result

    @staticmethod
    def _find_index(records: list[StoredEntry], record_id: int) -> int | None:
        for index, record in enumerate(records):
            if record.id == record_id:
                return index
        return None

    @staticmethod
    def _referenced_paths(records: Iterable[StoredEntry]) -> set[str]:
        return {path for record in records for path in record.asset_paths()}
