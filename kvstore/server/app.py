"""FastAPI application serving the live viewer and mutation API."""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field, field_validator

from kvstore import __version__
from kvstore.core.exceptions import (
    KvStoreError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)
from kvstore.core.validators import require_non_empty
from kvstore.storage.namespace import NamespaceStore

from .html import record_payload, render_page

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 128 * 1024
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7878


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RecordUpsertPayload(BaseModel):
    key: str
    value: str
    tags: list[str] | None = None
    ttl_minutes: int | None = None

    @field_validator("ttl_minutes", mode="before")
    @classmethod
    def blank_ttl_is_permanent(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class RecordKeyPayload(BaseModel):
    key: str


class RecordTagPayload(BaseModel):
    key: str
    tag: str


class RecordTtlExtendPayload(BaseModel):
    key: str
    ttl_minutes: int


class TagRenamePayload(BaseModel):
    from_: str = Field(alias="from")
    to: str


class TagDeletePayload(BaseModel):
    tag: str


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _text(message: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code)


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())[1:])
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "invalid request: " + "; ".join(parts)


def _status_for(exc: KvStoreError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, PayloadTooLargeError):
        return 413
    if isinstance(exc, ValidationError):
        return 400
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(KvStoreError)
    async def _store_error(request: Request, exc: KvStoreError) -> PlainTextResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("request %s failed: %s", request.url.path, exc)
        else:
            logger.debug("request %s rejected: %s", request.url.path, exc)
        return _text(str(exc), status_code)

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(
        request: Request, exc: RequestValidationError
    ) -> PlainTextResponse:
        return _text(_describe_validation(exc), 400)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def get_store(request: Request) -> NamespaceStore:
    return request.app.state.store


def create_app(store: NamespaceStore) -> FastAPI:
    """Build the app around an already opened store."""
    app = FastAPI(
        title="kvstore",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.store = store
    install_error_handlers(app)

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length", "")
        if length.isdigit() and int(length) > MAX_BODY_BYTES:
            return _text(str(PayloadTooLargeError(int(length))), 413)
        return await call_next(request)

    @app.get("/", response_class=HTMLResponse)
    def index(store: NamespaceStore = Depends(get_store)) -> HTMLResponse:  # noqa: B008
        store.cache.refresh()
        snapshot = store.cache.snapshot()
        page = render_page(
            snapshot.ordered(),
            snapshot.version,
            title=f"kvstore: {store.namespace}",
            poll_endpoint="/data",
            api_endpoint="/api",
        )
        return HTMLResponse(page)

    @app.get("/data")
    def data(
        since: int | None = None,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> JSONResponse:
        result = store.cache.poll(since)
        body: dict = {"version": result.version, "changed": result.changed}
        if result.records is not None:
            body["records"] = [record_payload(r) for r in result.records]
        return JSONResponse(body)

    @app.get("/health")
    def health() -> PlainTextResponse:
        return _text("ok")

    @app.get("/favicon.ico")
    def favicon() -> Response:
        return Response(status_code=204)

    @app.post("/api/records/upsert")
    def upsert_record(
        payload: RecordUpsertPayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        key = require_non_empty(payload.key, "key")
        store.cache.refresh()
        result = store.put(
            key, payload.value, tags=payload.tags, ttl_minutes=payload.ttl_minutes
        )
        return _text(f"created '{key}'" if result.created else f"updated '{key}'")

    @app.post("/api/records/delete")
    def delete_record(
        payload: RecordKeyPayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        key = require_non_empty(payload.key, "key")
        store.cache.refresh()
        store.remove(key)
        return _text(f"deleted '{key}'")

    @app.post("/api/records/tags/add")
    def add_record_tag(
        payload: RecordTagPayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        key = require_non_empty(payload.key, "key")
        tag = require_non_empty(payload.tag, "tag")
        store.cache.refresh()
        _, changed = store.cache.add_tag(key, tag)
        if not changed:
            return _text(f"tag '{tag}' already exists on '{key}'")
        return _text(f"added tag '{tag}' to '{key}'")

    @app.post("/api/records/tags/remove")
    def remove_record_tag(
        payload: RecordTagPayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        key = require_non_empty(payload.key, "key")
        tag = require_non_empty(payload.tag, "tag")
        store.cache.refresh()
        store.cache.remove_tag(key, tag)
        return _text(f"removed tag '{tag}' from '{key}'")

    @app.post("/api/records/ttl/extend")
    def extend_record_ttl(
        payload: RecordTtlExtendPayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        key = require_non_empty(payload.key, "key")
        store.cache.refresh()
        store.cache.extend_ttl(key, payload.ttl_minutes)
        return _text(
            f"extended ttl for '{key}' by {payload.ttl_minutes} minute(s)"
        )

    @app.post("/api/tags/rename")
    def rename_tag(
        payload: TagRenamePayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        old = require_non_empty(payload.from_, "from")
        new = require_non_empty(payload.to, "to")
        store.cache.refresh()
        changed = store.cache.rename_tag(old, new)
        return _text(f"renamed tag '{old}' to '{new}' on {changed} record(s)")

    @app.post("/api/tags/delete")
    def delete_tag(
        payload: TagDeletePayload,
        store: NamespaceStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        tag = require_non_empty(payload.tag, "tag")
        store.cache.refresh()
        changed = store.cache.delete_tag(tag)
        return _text(f"deleted tag '{tag}' from {changed} record(s)")

    return app


def serve(
    store: NamespaceStore,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Run the live viewer until interrupted."""
    import uvicorn

    logger.info("serving namespace %s on http://%s:%d", store.namespace, host, port)
    uvicorn.run(create_app(store), host=host, port=port, log_level=log_level)
