"""Routing and storage of uploaded media and poster files."""

from __future__ import annotations

import enum
import logging
import secrets
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Iterable, Mapping

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile

from ..config import Settings
from ..errors import (
    InvalidCategory,
    InvalidField,
    PayloadTooLarge,
    TooManyParts,
    UnsupportedMediaType,
)
from ..models import CATEGORIES

logger = logging.getLogger(__name__)

MEDIA_FIELD = "movie_file"
POSTER_FIELD = "poster_file"

CATEGORY_URL_PREFIXES: dict[str, str] = {
    "movie": "/hub/movies",
    "tv-series": "/hub/series",
    "music": "/hub/music",
    "animation": "/hub/animations",
}
POSTER_URL_PREFIX = "/hub/posters"


@dataclass(frozen=True, slots=True)
class Destination:
    """Directory on disk and the URL prefix it is served under."""

    directory: Path
    url_prefix: str

    def site_path(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"


@dataclass(frozen=True, slots=True)
class UploadLimits:
    media_max_bytes: int = 500 * 1024 * 1024
    poster_max_bytes: int = 10 * 1024 * 1024
    max_fields: int = 20
    max_files: int = 2
    max_parts: int = 22

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadLimits":
        return cls(
            media_max_bytes=settings.upload_file_size_limit,
            poster_max_bytes=settings.upload_poster_size_limit,
            max_fields=settings.upload_fields_limit,
            max_files=settings.upload_files_limit,
            max_parts=settings.upload_parts_limit,
        )


@dataclass(frozen=True, slots=True)
class StoredUpload:
    """A file copied into its destination directory."""

    field_name: str
    disk_path: Path
    site_path: str


@dataclass(slots=True)
class Submission:
    """Text fields and accepted (not yet stored) files of a multipart form."""

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, UploadFile] = field(default_factory=dict)

    @property
    def category(self) -> str | None:
        return self.fields.get("category")


class RemovalResult(str, enum.Enum):
    """Outcome of a best-effort file removal."""

    REMOVED = "removed"
    MISSING = "missing"
    SKIPPED = "skipped"
    FAILED = "failed"


class UploadRouter:
    """Maps upload fields to directories and manages the stored files."""

    def __init__(
        self,
        media_dirs: Mapping[str, Path],
        posters_dir: Path,
        *,
        limits: UploadLimits | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        missing = [category for category in CATEGORIES if category not in media_dirs]
        if missing:
            raise ValueError(f"Missing media directories for: {', '.join(missing)}")
        self._destinations = {
            category: Destination(Path(media_dirs[category]), CATEGORY_URL_PREFIXES[category])
            for category in CATEGORIES
        }
        self._poster_destination = Destination(Path(posters_dir), POSTER_URL_PREFIX)
        self._limits = limits or UploadLimits()
        self._log = log or logger

    @classmethod
    def from_settings(
        cls, settings: Settings, *, log: logging.Logger | None = None
    ) -> "UploadRouter":
        media_dirs = {
            "movie": settings.resolve_path(settings.movies_dir),
            "tv-series": settings.resolve_path(settings.series_dir),
            "music": settings.resolve_path(settings.music_dir),
            "animation": settings.resolve_path(settings.animations_dir),
        }
        return cls(
            media_dirs,
            settings.resolve_path(settings.posters_dir),
            limits=UploadLimits.from_settings(settings),
            log=log,
        )

    @property
    def limits(self) -> UploadLimits:
        return self._limits

    def mounts(self) -> list[Destination]:
        """Return every upload destination, posters last."""

        return [*self._destinations.values(), self._poster_destination]

    def resolve_destination(self, field_name: str, category: str | None) -> Destination:
        if category not in self._destinations:
            raise InvalidCategory()
        if field_name == MEDIA_FIELD:
            return self._destinations[category]
        if field_name == POSTER_FIELD:
            return self._poster_destination
        raise InvalidField()

    @staticmethod
    def generate_filename(original_name: str) -> str:
        """Return ``<epoch-millis>-<9 random digits>-<original basename>``."""

        basename = PurePosixPath((original_name or "").replace("\\", "/")).name
        basename = basename.strip() or "upload"
        suffix = secrets.randbelow(1_000_000_000)
        return f"{int(time.time() * 1000)}-{suffix:09d}-{basename}"

    @staticmethod
    def validate_file(field_name: str, mime_type: str | None) -> None:
        mime = (mime_type or "").lower()
        if field_name == MEDIA_FIELD:
            if not (mime.startswith("video/") or mime.startswith("audio/")):
                raise UnsupportedMediaType("Movie file must be video or audio")
        elif field_name == POSTER_FIELD:
            if not mime.startswith("image/"):
                raise UnsupportedMediaType("Poster file must be an image")
        else:
            raise InvalidField()

    def check_size(self, field_name: str, size: int | None) -> None:
        if size is None:
            return
        limit = (
            self._limits.media_max_bytes
            if field_name == MEDIA_FIELD
            else self._limits.poster_max_bytes
        )
        if size > limit:
            raise PayloadTooLarge(
                f"File upload error: {field_name} exceeds {limit} bytes"
            )

    def collect(self, form: FormData | Iterable[tuple[str, Any]]) -> Submission:
        """Split a parsed form into fields and files, rejecting bad parts.

        Every file is checked before any of them is stored.
        """

        items = list(form.multi_items() if isinstance(form, FormData) else form)
        if len(items) > self._limits.max_parts:
            raise TooManyParts()

        submission = Submission()
        field_count = 0
        file_count = 0
        for name, value in items:
            if isinstance(value, UploadFile):
                if not value.filename and not value.size:
                    # Browsers submit an empty part for an untouched file input.
                    continue
                file_count += 1
                if file_count > self._limits.max_files:
                    raise TooManyParts("File upload error: Too many files")
                if name in submission.files:
                    raise TooManyParts(f"File upload error: Unexpected field {name}")
                submission.files[name] = value
                continue
            field_count += 1
            if field_count > self._limits.max_fields:
                raise TooManyParts("File upload error: Too many fields")
            submission.fields.setdefault(name, str(value))

        for name, upload in submission.files.items():
            self.resolve_destination(name, submission.category)
            self.validate_file(name, upload.content_type)
            self.check_size(name, upload.size)
        return submission

    async def store(
        self, field_name: str, category: str | None, upload: UploadFile
    ) -> StoredUpload:
        destination = self.resolve_destination(field_name, category)
        filename = self.generate_filename(upload.filename or "")
        disk_path = destination.directory / filename

        def _copy() -> int:
            destination.directory.mkdir(parents=True, exist_ok=True)
            upload.file.seek(0)
            with disk_path.open("wb") as handle:
                shutil.copyfileobj(upload.file, handle)
                return handle.tell()

        written = await run_in_threadpool(_copy)
        try:
            self.check_size(field_name, written)
        except PayloadTooLarge:
            self._remove_disk_path(disk_path)
            raise
        self._log.info("Stored %s upload at %s", field_name, disk_path)
        return StoredUpload(field_name, disk_path, destination.site_path(filename))

    async def store_all(self, submission: Submission) -> dict[str, StoredUpload]:
        stored: dict[str, StoredUpload] = {}
        try:
            for name, upload in submission.files.items():
                stored[name] = await self.store(name, submission.category, upload)
        except Exception:
            self.discard(stored.values())
            raise
        return stored

    def disk_path_for(self, site_path: str | None) -> Path | None:
        """Map a site path under an upload mount back to its file on disk."""

        if not site_path:
            return None
        for destination in self.mounts():
            prefix = f"{destination.url_prefix}/"
            if not site_path.startswith(prefix):
                continue
            name = site_path[len(prefix):]
            if not name or "/" in name or name in {".", ".."}:
                return None
            return destination.directory / name
        return None

    def remove(self, site_path: str | None) -> RemovalResult:
        """Delete the uploaded file behind ``site_path``; never raises."""

        disk_path = self.disk_path_for(site_path)
        if disk_path is None:
            return RemovalResult.SKIPPED
        return self._remove_disk_path(disk_path)

    def discard(self, stored: Iterable[StoredUpload]) -> None:
        for upload in stored:
            self._remove_disk_path(upload.disk_path)

    def _remove_disk_path(self, disk_path: Path) -> RemovalResult:
        try:
            disk_path.unlink()
        except FileNotFoundError:
            self._log.warning("File already gone: %s", disk_path)
            return RemovalResult.MISSING
        except OSError as exc:
            self._log.warning("Failed to delete file %s: %s", disk_path, exc)
            return RemovalResult.FAILED
        self._log.info("Deleted file %s", disk_path)
        return RemovalResult.REMOVED
