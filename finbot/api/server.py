"""
REST Backend

Minimal CRUD over the server document:

    GET    /api/health
    GET    /api/<collection>
    POST   /api/<collection>          201, id assigned when absent
    PUT    /api/<collection>/{id}     merge, path id wins, 404 if missing
    DELETE /api/<collection>/{id}     204, 404 if missing
    GET    /api/settings
    POST   /api/settings              partial update of level and theme
    POST   /api/settings/subscription {"level": "FREE|PRO|PREMIUM"}
    POST   /api/settings/theme        {"theme": "LIGHT|DARK"}

Errors are always `{"message": "..."}` with a 4xx status. Items are
stored as the client sent them; the backend does not impose the ledger
schema.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import structlog
from fastapi import Body, FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finbot.api.document import COLLECTION_KEYS, ServerDocumentStore
from finbot.config import get_settings
from finbot.models.ledger import SubscriptionLevel, Theme
from finbot.services.storage.interface import StorageError


logger = structlog.get_logger()


class ApiError(Exception):
    """Raised by route handlers; rendered as {"message": ...}."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def _parse_level(value: Any) -> str:
    try:
        return SubscriptionLevel(value).value
    except ValueError:
        raise ApiError(400, "Invalid subscription level")


def _parse_theme(value: Any) -> str:
    try:
        return Theme(value).value
    except ValueError:
        raise ApiError(400, "Invalid theme")


def _register_collection(app: FastAPI, store: ServerDocumentStore, key: str) -> None:
    """CRUD routes for one top-level list of the document."""

    def list_items():
        return store.read().get(key) or []

    def create_item(item: dict[str, Any] = Body(...)):
        item = dict(item)
        if not item.get("id"):
            item["id"] = str(uuid4())
        with store.mutate() as data:
            data[key] = list(data.get(key) or [])
            data[key].append(item)
        logger.info("item_created", collection=key, item_id=item["id"])
        return JSONResponse(status_code=201, content=item)

    def update_item(item_id: str, updates: dict[str, Any] = Body(...)):
        with store.mutate() as data:
            items = list(data.get(key) or [])
            for index, entry in enumerate(items):
                if entry.get("id") == item_id:
                    updated = {**entry, **updates, "id": item_id}
                    items[index] = updated
                    data[key] = items
                    return updated
            raise ApiError(404, f"{key} item not found")

    def delete_item(item_id: str):
        with store.mutate() as data:
            items = list(data.get(key) or [])
            remaining = [entry for entry in items if entry.get("id") != item_id]
            if len(remaining) == len(items):
                raise ApiError(404, f"{key} item not found")
            data[key] = remaining
        logger.info("item_deleted", collection=key, item_id=item_id)
        return Response(status_code=204)

    app.add_api_route(f"/api/{key}", list_items, methods=["GET"], name=f"list_{key}")
    app.add_api_route(f"/api/{key}", create_item, methods=["POST"], name=f"create_{key}")
    app.add_api_route(f"/api/{key}/{{item_id}}", update_item, methods=["PUT"], name=f"update_{key}")
    app.add_api_route(
        f"/api/{key}/{{item_id}}", delete_item, methods=["DELETE"],
        name=f"delete_{key}", status_code=204,
    )


def create_app(store: Optional[ServerDocumentStore] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        store: Document store to serve. Defaults to the file named by
               FINBOT_SERVER_DATA_FILE.
    """
    server_settings = get_settings().server
    store = store or ServerDocumentStore(server_settings.data_file)

    app = FastAPI(title="FinBot Ledger API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(_request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": "Invalid request body"})

    @app.exception_handler(StorageError)
    async def storage_error_handler(_request, exc: StorageError):
        logger.error("document_write_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"message": "Failed to save data"})

    @app.get("/api/health")
    def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    for key in COLLECTION_KEYS:
        _register_collection(app, store, key)

    @app.get("/api/settings")
    def get_settings_route():
        data = store.read()
        return {
            "subscriptionLevel": data.get("subscriptionLevel") or SubscriptionLevel.FREE.value,
            "theme": data.get("theme") or Theme.DARK.value,
        }

    @app.post("/api/settings")
    def update_settings(payload: dict[str, Any] = Body(...)):
        changes = {}
        if "subscriptionLevel" in payload:
            changes["subscriptionLevel"] = _parse_level(payload["subscriptionLevel"])
        if "theme" in payload:
            changes["theme"] = _parse_theme(payload["theme"])
        with store.mutate() as data:
            data.update(changes)
            return {
                "subscriptionLevel": data["subscriptionLevel"],
                "theme": data["theme"],
            }

    @app.post("/api/settings/subscription")
    def set_subscription(payload: dict[str, Any] = Body(...)):
        level = _parse_level(payload.get("level"))
        with store.mutate() as data:
            data["subscriptionLevel"] = level
        return {"subscriptionLevel": level}

    @app.post("/api/settings/theme")
    def set_theme(payload: dict[str, Any] = Body(...)):
        theme = _parse_theme(payload.get("theme"))
        with store.mutate() as data:
            data["theme"] = theme
        return {"theme": theme}

    return app
