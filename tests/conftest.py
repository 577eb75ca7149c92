"""Pytest configuration and test helpers."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from starlette.datastructures import Headers, UploadFile


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.services.catalog_store import JsonCatalogStore  # noqa: E402
from app.services.library import CatalogManager  # noqa: E402
from app.services.uploads import UploadLimits, UploadRouter  # noqa: E402


def make_upload(
    filename: str,
    content_type: str,
    payload: bytes = b"data",
) -> UploadFile:
    """Return an in-memory upload as Starlette hands it to the routes."""

    return UploadFile(
        file=io.BytesIO(payload),
        filename=filename,
        size=len(payload),
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def upload_factory():
    return make_upload


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    return tmp_path / "site"


@pytest.fixture
def upload_router(site_root: Path) -> UploadRouter:
    return UploadRouter(
        {
            "movie": site_root / "hub" / "MOVIES",
            "tv-series": site_root / "hub" / "SERIES",
            "music": site_root / "hub" / "MUSIC",
            "animation": site_root / "hub" / "ANIMATION",
        },
        site_root / "hub" / "POSTERS",
        limits=UploadLimits(media_max_bytes=1024, poster_max_bytes=256),
    )


@pytest.fixture
def catalog_store(site_root: Path) -> JsonCatalogStore:
    return JsonCatalogStore(
        site_root / "assets" / "data" / "movies.json",
        site_root / "assets" / "backups",
        max_backups=10,
    )


@pytest.fixture
def catalog_manager(
    catalog_store: JsonCatalogStore, upload_router: UploadRouter
) -> CatalogManager:
    return CatalogManager(catalog_store, upload_router)
