"""Entry point for the FastAPI-powered catalog service."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import Database
from .errors import CatalogError, Forbidden, NotFound, StoreCorrupt, TooManyParts
from .services.auth import AuthService, Identity
from .services.catalog_store import JsonCatalogStore
from .services.library import CatalogManager
from .services.uploads import Submission, UploadRouter

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    database = Database(settings.database_url)
    await database.create_all()

    auth_service = AuthService(database.session_factory, settings)
    await auth_service.bootstrap()

    store = JsonCatalogStore(
        settings.catalog_file,
        settings.backup_directory,
        max_backups=settings.backup_retention,
    )
    store.ensure_exists()
    catalog_manager = CatalogManager(
        store,
        UploadRouter.from_settings(settings),
        cleanup_rejected_uploads=settings.upload_cleanup_on_reject,
    )

    fastapi_app.state.database = database
    fastapi_app.state.auth_service = auth_service
    fastapi_app.state.catalog_manager = catalog_manager
    logger.info("Serving catalog from %s", settings.catalog_file)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie, series, music and animation catalog with admin uploads",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @fastapi_app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    register_routes(fastapi_app)
    mount_upload_directories(fastapi_app, UploadRouter.from_settings(settings))
    return fastapi_app


def mount_upload_directories(fastapi_app: FastAPI, uploads: UploadRouter) -> None:
    """Serve every upload directory under its public URL prefix."""

    for destination in uploads.mounts():
        fastapi_app.mount(
            destination.url_prefix,
            StaticFiles(directory=destination.directory, check_dir=False),
            name=destination.url_prefix.strip("/").replace("/", "-"),
        )


def get_catalog_manager(app: FastAPI) -> CatalogManager:
    manager = getattr(app.state, "catalog_manager", None)
    if not isinstance(manager, CatalogManager):
        raise RuntimeError("Catalog manager not initialised")
    return manager


def get_auth_service(app: FastAPI) -> AuthService:
    service = getattr(app.state, "auth_service", None)
    if not isinstance(service, AuthService):
        raise RuntimeError("Auth service not initialised")
    return service


async def require_admin(request: Request) -> Identity:
    """Resolve the caller from the ``Authorization: Bearer`` header."""

    parts = request.headers.get("authorization", "").split()
    token = parts[1] if len(parts) == 2 else None
    if not token:
        logger.info("No token provided for %s", request.url.path)
    return get_auth_service(request.app).verify_token(token)


def parse_record_id(raw: str) -> int:
    """Read a record id from the URL, treating anything unparseable as unknown."""

    try:
        return int(raw.strip())
    except ValueError:
        raise NotFound() from None


@asynccontextmanager
async def read_submission(
    request: Request, uploads: UploadRouter
) -> AsyncIterator[Submission]:
    """Parse and check the multipart body, closing spooled files afterwards."""

    limits = uploads.limits
    try:
        form = await request.form(
            max_files=limits.max_files + 1, max_fields=limits.max_fields + 1
        )
    except StarletteHTTPException as exc:
        raise TooManyParts(f"File upload error: {exc.detail}") from exc
    try:
        yield uploads.collect(form)
    finally:
        await form.close()


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(CatalogError)
    async def catalog_error_handler(_: Request, exc: CatalogError) -> JSONResponse:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/config")
    async def client_config() -> Response:
        env = {
            "CACHE_DURATION": str(settings.cache_duration_ms),
            "API_BASE_URL": settings.api_base_url,
            "FALLBACK_VIDEO_PATH": settings.fallback_video_path,
        }
        return Response(
            f"window.env = {json.dumps(env, indent=2)};\n",
            media_type="application/javascript",
            headers={"Cache-Control": "no-cache"},
        )

    @fastapi_app.get("/config/")
    async def client_config_slash() -> JSONResponse:
        raise NotFound("Not found: Use /config instead of /config/")

    @fastapi_app.post("/auth/login")
    async def login(request: Request) -> dict[str, str]:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        service = get_auth_service(fastapi_app)
        return await service.authenticate(payload.get("username"), payload.get("password"))

    @fastapi_app.get("/assets/data/movies.json")
    async def list_movies() -> JSONResponse:
        manager = get_catalog_manager(fastapi_app)
        try:
            records = await manager.list_records()
        except (StoreCorrupt, OSError) as exc:
            logger.exception("Failed to load catalog: %s", exc)
            raise StoreCorrupt("Failed to load movies") from exc
        return JSONResponse([record.to_payload() for record in records])

    @fastapi_app.get("/assets/data/users.json")
    async def users_file() -> JSONResponse:
        logger.warning("Attempted access to restricted /assets/data/users.json")
        raise Forbidden("Access to user data is restricted")

    @fastapi_app.post("/movies/add")
    async def add_movie(
        request: Request, identity: Identity = Depends(require_admin)
    ) -> JSONResponse:
        manager = get_catalog_manager(fastapi_app)
        async with read_submission(request, manager.uploads) as submission:
            stored = await manager.uploads.store_all(submission)
            record = await manager.add(submission.fields, stored)
        logger.info("Record %s added by %s", record.id, identity.username)
        return JSONResponse(record.to_payload())

    @fastapi_app.post("/movies/edit/{record_id}")
    async def edit_movie(
        request: Request,
        record_id: str,
        identity: Identity = Depends(require_admin),
    ) -> JSONResponse:
        manager = get_catalog_manager(fastapi_app)
        lookup_id = parse_record_id(record_id)
        async with read_submission(request, manager.uploads) as submission:
            stored = await manager.uploads.store_all(submission)
            record = await manager.edit(lookup_id, submission.fields, stored)
        logger.info("Record %s edited by %s", record.id, identity.username)
        return JSONResponse(record.to_payload())

    @fastapi_app.delete("/movies/delete/{record_id}")
    async def delete_movie(
        record_id: str, identity: Identity = Depends(require_admin)
    ) -> dict[str, str]:
        manager = get_catalog_manager(fastapi_app)
        lookup_id = parse_record_id(record_id)
        try:
            result = await manager.delete(lookup_id)
        except OSError as exc:
            logger.exception("Failed to delete record %s: %s", record_id, exc)
            raise CatalogError("Failed to delete movie") from exc
        logger.info("Record %s deleted by %s", record_id, identity.username)
        return result


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
