from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.database import Database
from app.main import register_routes
from app.services.auth import AuthService
from app.services.catalog_store import JsonCatalogStore
from app.services.library import CatalogManager
from app.services.uploads import UploadRouter


@pytest.fixture
def client(
    tmp_path: Path,
    catalog_store: JsonCatalogStore,
    upload_router: UploadRouter,
):
    settings = Settings(
        _env_file=None,
        ROOT_DIR=str(tmp_path),
        SECRET_KEY="test-secret",
    )

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
        await database.create_all()
        auth_service = AuthService(database.session_factory, settings)
        await auth_service.bootstrap()
        fastapi_app.state.auth_service = auth_service
        fastapi_app.state.catalog_manager = CatalogManager(catalog_store, upload_router)
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(lifespan=lifespan)
    register_routes(app)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client: TestClient) -> dict[str, str]:
    response = client.post(
        "/auth/login", json={"username": "admin", "password": "admin123"}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def _add_movie(client: TestClient, headers: dict[str, str], **fields) -> dict:
    data = {"title": "Heat", "category": "movie", "year": "1995", "rating": "8.3"}
    data.update(fields)
    response = client.post(
        "/movies/add",
        data=data,
        files={
            "movie_file": ("heat.mp4", b"frames", "video/mp4"),
            "poster_file": ("heat.jpg", b"pixels", "image/jpeg"),
        },
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_healthcheck(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def test_client_config_script(client: TestClient) -> None:
    response = client.get("/config")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/javascript")
    assert response.headers["cache-control"] == "no-cache"
    body = response.text
    assert body.startswith("window.env = ")
    env = json.loads(body[len("window.env = "):].rstrip().rstrip(";"))
    assert set(env) == {"CACHE_DURATION", "API_BASE_URL", "FALLBACK_VIDEO_PATH"}


def test_client_config_trailing_slash_is_not_found(client: TestClient) -> None:
    response = client.get("/config/")

    assert response.status_code == 404
    assert response.json() == {"error": "Not found: Use /config instead of /config/"}


def test_users_file_is_forbidden(client: TestClient) -> None:
    response = client.get("/assets/data/users.json")

    assert response.status_code == 403
    assert response.json() == {"error": "Access to user data is restricted"}


def test_login_failures(client: TestClient) -> None:
    missing = client.post("/auth/login", json={"username": "admin"})
    wrong = client.post("/auth/login", json={"username": "admin", "password": "nope"})
    unknown = client.post("/auth/login", json={"username": "ghost", "password": "x"})

    assert missing.status_code == 400
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid password"}
    assert unknown.status_code == 401
    assert unknown.json() == {"error": "Invalid username or email"}


def test_login_by_email(client: TestClient) -> None:
    response = client.post(
        "/auth/login", json={"username": "admin@creatives.com", "password": "admin123"}
    )

    assert response.status_code == 200
    assert response.json()["username"] == "admin"


def test_mutations_require_token(client: TestClient) -> None:
    no_token = client.delete("/movies/delete/1")
    bad_token = client.delete(
        "/movies/delete/1", headers={"Authorization": "Bearer not-a-token"}
    )

    assert no_token.status_code == 401
    assert no_token.json() == {"error": "Unauthorized: No token provided"}
    assert bad_token.status_code == 401
    assert bad_token.json() == {"error": "Unauthorized: Invalid token"}


def test_list_starts_empty(client: TestClient) -> None:
    response = client.get("/assets/data/movies.json")

    assert response.status_code == 200
    assert response.json() == []


def test_add_movie_stores_files_and_record(
    client: TestClient, auth_headers: dict[str, str], site_root: Path
) -> None:
    record = _add_movie(client, auth_headers, genres="Crime, Thriller")

    assert record["id"] == 1
    assert record["title"] == "Heat"
    assert record["genres"] == ["Crime", "Thriller"]
    assert record["file_path"].startswith("/hub/movies/")
    assert record["poster"].startswith("/hub/posters/")
    assert (site_root / "hub" / "MOVIES" / record["file_path"].rsplit("/", 1)[1]).exists()

    listed = client.get("/assets/data/movies.json").json()
    assert listed == [record]


def test_add_without_media_file(client: TestClient, auth_headers: dict[str, str]) -> None:
    response = client.post(
        "/movies/add",
        data={"title": "Heat", "category": "movie"},
        files={"poster_file": ("heat.jpg", b"pixels", "image/jpeg")},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Movie file is required"}


def test_add_rejects_invalid_category(
    client: TestClient, auth_headers: dict[str, str], site_root: Path
) -> None:
    response = client.post(
        "/movies/add",
        data={"title": "Heat", "category": "podcast"},
        files={"movie_file": ("heat.mp4", b"frames", "video/mp4")},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid category")
    assert not (site_root / "hub" / "MOVIES").exists()


def test_add_rejects_wrong_media_type(client: TestClient, auth_headers: dict[str, str]) -> None:
    response = client.post(
        "/movies/add",
        data={"title": "Heat", "category": "movie"},
        files={"movie_file": ("heat.txt", b"text", "text/plain")},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Movie file must be video or audio"}


def test_add_rejects_oversized_upload(client: TestClient, auth_headers: dict[str, str]) -> None:
    response = client.post(
        "/movies/add",
        data={"title": "Heat", "category": "movie"},
        files={"movie_file": ("heat.mp4", b"x" * 2048, "video/mp4")},
        headers=auth_headers,
    )

    assert response.status_code == 413


def test_add_validation_error_cleans_up_uploads(
    client: TestClient, auth_headers: dict[str, str], site_root: Path
) -> None:
    response = client.post(
        "/movies/add",
        data={"title": "Heat", "category": "movie", "year": "95"},
        files={"movie_file": ("heat.mp4", b"frames", "video/mp4")},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Year must be a 4-digit number"}
    assert list((site_root / "hub" / "MOVIES").iterdir()) == []


def test_edit_replaces_metadata_and_keeps_files(
    client: TestClient, auth_headers: dict[str, str]
) -> None:
    original = _add_movie(client, auth_headers)

    response = client.post(
        f"/movies/edit/{original['id']}",
        data={"title": "Heat (Director's Cut)", "category": "movie", "rating": "9"},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.text
    edited = response.json()
    assert edited["id"] == original["id"]
    assert edited["title"] == "Heat (Director's Cut)"
    assert edited["file_path"] == original["file_path"]
    assert edited["poster"] == original["poster"]
    assert edited["year"] == ""


def test_edit_unknown_record(client: TestClient, auth_headers: dict[str, str]) -> None:
    response = client.post(
        "/movies/edit/42",
        data={"title": "Ghost", "category": "movie"},
        headers=auth_headers,
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Movie not found"}


def test_delete_removes_record_and_files(
    client: TestClient, auth_headers: dict[str, str], site_root: Path
) -> None:
    record = _add_movie(client, auth_headers)

    response = client.delete(f"/movies/delete/{record['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Movie deleted"}
    assert client.get("/assets/data/movies.json").json() == []
    assert list((site_root / "hub" / "MOVIES").iterdir()) == []
    assert list((site_root / "hub" / "POSTERS").iterdir()) == []

    again = client.delete(f"/movies/delete/{record['id']}", headers=auth_headers)
    assert again.status_code == 404


def test_packages_expose_application_factory() -> None:
    import app as app_package
    import cinehub
    from app.main import create_app

    assert app_package.create_app is create_app
    assert cinehub.create_app is create_app
    assert cinehub.settings is app_package.settings


def test_non_numeric_record_id_is_not_found(
    client: TestClient, auth_headers: dict[str, str]
) -> None:
    deleted = client.delete("/movies/delete/abc", headers=auth_headers)
    edited = client.post(
        "/movies/edit/abc",
        data={"title": "Ghost", "category": "movie"},
        headers=auth_headers,
    )

    assert deleted.status_code == 404
    assert deleted.json() == {"error": "Movie not found"}
    assert edited.status_code == 404
    assert edited.json() == {"error": "Movie not found"}


def test_list_returns_legacy_entries_as_stored(
    client: TestClient, catalog_store: JsonCatalogStore
) -> None:
    legacy = [
        {"id": 1, "category": "tv-series", "seasons": [{"season": 1}]},
        {"id": 2, "title": "Old", "category": "movie", "filePath": "/hub/movies/old.mp4", "rating": 12},
    ]
    catalog_store.catalog_file.parent.mkdir(parents=True, exist_ok=True)
    catalog_store.catalog_file.write_text(json.dumps(legacy))

    response = client.get("/assets/data/movies.json")

    assert response.status_code == 200
    listed = response.json()
    assert listed[0] == legacy[0]
    assert listed[1]["title"] == "Old"
    assert listed[1]["file_path"] == "/hub/movies/old.mp4"
    assert listed[1]["rating"] == 12
