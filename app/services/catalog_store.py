"""JSON file persistence for the media catalog."""

from __future__ import annotations

import json
import logging
import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..errors import StoreCorrupt
from ..models import StoredEntry, StoredRecord, load_stored_entry
from ..utils import file_timestamp

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "movies-backup-"
BACKUP_SUFFIX = ".json"


class CatalogStore(Protocol):
    """Storage backend holding the full record collection."""

    def ensure_exists(self) -> None: ...

    def read(self) -> list[StoredEntry]: ...

    def write(self, records: Sequence[StoredEntry]) -> None: ...

    def backup(self) -> Path | None: ...

    def prune_backups(self, max_backups: int | None = None) -> list[Path]: ...

    def next_id(self, records: Iterable[StoredEntry]) -> int: ...


class JsonCatalogStore:
    """Keeps every record in one pretty-printed JSON array.

    Mutations are not synchronised here; callers serialise writers.
    """

    def __init__(
        self,
        catalog_file: Path,
        backup_dir: Path,
        *,
        max_backups: int = 10,
        log: logging.Logger | None = None,
    ) -> None:
        self._catalog_file = Path(catalog_file)
        self._backup_dir = Path(backup_dir)
        self._max_backups = max_backups
        self._log = log or logger

    @property
    def catalog_file(self) -> Path:
        return self._catalog_file

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    def ensure_exists(self) -> None:
        """Reset the catalog to an empty array when missing or unreadable."""

        try:
            payload = json.loads(self._catalog_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            payload = None
        if isinstance(payload, list):
            return
        self._log.info("Creating or resetting %s", self._catalog_file)
        self._dump([])

    def read(self) -> list[StoredEntry]:
        """Return every entry in file order.

        Entries that fail full validation are kept as ``StoredRecord`` so one
        legacy entry never hides the rest of the catalog.
        """

        try:
            payload = json.loads(self._catalog_file.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise StoreCorrupt(f"Catalog file {self._catalog_file} is missing") from exc
        except (OSError, ValueError) as exc:
            raise StoreCorrupt(f"Catalog file {self._catalog_file} is unreadable") from exc
        if not isinstance(payload, list):
            raise StoreCorrupt("Catalog file must contain a JSON array")

        records: list[StoredEntry] = []
        for index, entry in enumerate(payload):
            try:
                record = load_stored_entry(entry)
            except PydanticValidationError as exc:
                raise StoreCorrupt(
                    f"Catalog entry at position {index} has no usable id"
                ) from exc
            if isinstance(record, StoredRecord):
                self._log.warning(
                    "Catalog entry %s at position %d does not validate; keeping it as stored",
                    record.id,
                    index,
                )
            records.append(record)
        return records

    def write(self, records: Sequence[StoredEntry]) -> None:
        self._dump([record.to_payload() for record in records])

    def backup(self) -> Path | None:
        """Copy the catalog into the backup directory, then prune old copies.

        Failures are logged and reported as ``None``.
        """

        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
            target = self._backup_target()
            shutil.copyfile(self._catalog_file, target)
        except OSError as exc:
            self._log.error("Failed to create backup of %s: %s", self._catalog_file, exc)
            return None
        self._log.info("Backup created: %s", target)
        self.prune_backups()
        return target

    def prune_backups(self, max_backups: int | None = None) -> list[Path]:
        """Delete all but the newest ``max_backups`` backups; return the removed paths."""

        limit = self._max_backups if max_backups is None else max_backups
        removed: list[Path] = []
        try:
            backups = sorted(
                (
                    path
                    for path in self._backup_dir.iterdir()
                    if path.is_file()
                    and path.name.startswith(BACKUP_PREFIX)
                    and path.name.endswith(BACKUP_SUFFIX)
                ),
                key=lambda path: path.name,
                reverse=True,
            )
            for path in backups[limit:]:
                path.unlink()
                removed.append(path)
        except OSError as exc:
            self._log.error("Failed to clean up old backups in %s: %s", self._backup_dir, exc)
        return removed

    @staticmethod
    def next_id(records: Iterable[StoredEntry]) -> int:
        return max((record.id for record in records), default=0) + 1

    def _backup_target(self) -> Path:
        # Names must stay unique and sortable when several writes share a millisecond.
        moment = datetime.now(timezone.utc)
        while True:
            target = self._backup_dir / f"{BACKUP_PREFIX}{file_timestamp(moment)}{BACKUP_SUFFIX}"
            if not target.exists():
                return target
            moment += timedelta(milliseconds=1)

    def _dump(self, payload: list[dict[str, Any]]) -> None:
        self._catalog_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self._catalog_file.with_name(f".{self._catalog_file.name}.tmp")
        temp_file.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        os.replace(temp_file, self._catalog_file)
