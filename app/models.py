"""Pydantic models describing catalog records."""

from __future__ import annotations

import re
from typing import Any, Literal, Mapping

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .utils import split_genres

Category = Literal["movie", "tv-series", "music", "animation"]
CATEGORIES: tuple[str, ...] = ("movie", "tv-series", "music", "animation")

YEAR_RE = re.compile(r"^\d{4}$")
MAX_DESCRIPTION_LENGTH = 1000
MAX_GENRE_LENGTH = 50

# Optional display metadata reset to "" when an edit omits it.
METADATA_FIELDS: tuple[str, ...] = (
    "duration",
    "year",
    "rating",
    "resolution",
    "description",
)


class MediaEntry(BaseModel):
    """Every field of a catalog record except its identifier."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: str = Field(default="", validate_default=True)
    category: Category
    file_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("file_path", "filePath"),
    )
    poster: str = ""
    duration: str = ""
    year: str = ""
    rating: str | int | float = ""
    resolution: str = ""
    genres: list[str] = Field(default_factory=list)
    description: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def _require_title(cls, value: object) -> str:
        title = "" if value is None else str(value)
        if not title.strip():
            raise ValueError("Title is required")
        return title

    @field_validator("category", mode="before")
    @classmethod
    def _check_category(cls, value: object) -> object:
        if value not in CATEGORIES:
            raise ValueError("Invalid category")
        return value

    @field_validator("poster", "duration", "resolution", "description", mode="before")
    @classmethod
    def _blank_when_missing(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("year", mode="before")
    @classmethod
    def _check_year(cls, value: object) -> str:
        year = "" if value is None else str(value).strip()
        if year and not YEAR_RE.match(year):
            raise ValueError("Year must be a 4-digit number")
        return year

    @field_validator("rating", mode="before")
    @classmethod
    def _check_rating(cls, value: object) -> object:
        if value is None or value == "":
            return ""
        if isinstance(value, bool):
            raise ValueError("Rating must be between 0 and 10")
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise ValueError("Rating must be between 0 and 10") from None
        if number != number or number < 0 or number > 10:
            raise ValueError("Rating must be between 0 and 10")
        return value

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        if len(value) > MAX_DESCRIPTION_LENGTH:
            raise ValueError("Description must be 1000 characters or less")
        return value

    @field_validator("genres", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> list[str]:
        genres = split_genres(value)
        if any(len(genre) > MAX_GENRE_LENGTH for genre in genres):
            raise ValueError("Each genre must be 50 characters or less")
        return genres

    @model_validator(mode="after")
    def _require_media_path(self) -> "MediaEntry":
        """Series keep per-episode paths, everything else needs a media file."""

        if self.category != "tv-series" and not (self.file_path or "").strip():
            raise ValueError("Media file path is required")
        return self

    @classmethod
    def from_form(
        cls,
        fields: Mapping[str, Any],
        *,
        file_path: str | None,
        poster: str | None,
    ) -> "MediaEntry":
        """Build an entry from submitted form fields and resolved asset paths."""

        data: dict[str, Any] = {
            "title": fields.get("title"),
            "category": fields.get("category"),
            "file_path": file_path,
            "poster": poster or "",
            "genres": fields.get("genres"),
        }
        for name in METADATA_FIELDS:
            data[name] = fields.get(name) or ""
        return cls.model_validate(data)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON shape stored on disk and returned to clients."""

        return self.model_dump(mode="json")

    def asset_paths(self) -> tuple[str, ...]:
        """Return the site paths of the assets this entry references."""

        return tuple(path for path in (self.file_path, self.poster) if path)


class CatalogRecord(MediaEntry):
    """A persisted catalog entry."""

    id: int

    @classmethod
    def from_entry(cls, entry: MediaEntry, record_id: int) -> "CatalogRecord":
        return cls.model_validate({**entry.to_payload(), "id": record_id})



class StoredRecord(BaseModel):
    """A catalog entry kept as found on disk.

    Entries written by older tools may lack a title or carry display values
    that no longer validate. Only the identifier and the asset paths are
    checked, so the rest of the catalog stays usable.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    title: Any = None
    category: Any = None
    file_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("file_path", "filePath"),
    )
    poster: str = ""

    @field_validator("file_path", mode="before")
    @classmethod
    def _path_or_none(cls, value: object) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("poster", mode="before")
    @classmethod
    def _poster_or_blank(cls, value: object) -> str:
        return value if isinstance(value, str) else ""

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)

    def asset_paths(self) -> tuple[str, ...]:
        return tuple(path for path in (self.file_path, self.poster) if path)


StoredEntry = CatalogRecord | StoredRecord


def load_stored_entry(payload: Any) -> StoredEntry:
    """Validate a stored entry strictly, keeping it as found when that fails.

    Raises pydantic's ``ValidationError`` only when the entry has no usable
    identifier.
    """

    try:
        return CatalogRecord.model_validate(payload)
    except PydanticValidationError:
        return StoredRecord.model_validate(payload)
