"""Gateway endpoints.

One router, mounted twice by the app factory: at the root and under
``/api/v1``. Handlers are plain ``def`` functions so FastAPI runs the
blocking store calls in its threadpool; each one resolves the Gateway
from ``app.state`` and forwards.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from schemagate import __version__
from schemagate.api.models import AddFieldsRequest, AllocateRequest
from schemagate.config import AppConfig
from schemagate.errors import InvalidRequest, StorageUnavailable
from schemagate.gateway import Gateway

logger = logging.getLogger(__name__)

router = APIRouter()

ENDPOINTS = [
    "GET /ping",
    "POST /allocate",
    "GET /collections/{db}",
    "GET /detect-schema/{db}/{collection}",
    "GET /entries/{db}/{collection}",
    "POST /entry/{db}/{collection}",
    "GET|PUT|DELETE /entry/{db}/{collection}/{id}",
    "PUT /schema/{db}/{collection}",
    "DELETE /schema/{db}/{collection}/{field}",
    "/api/v1/* (versioned alias)",
]


def get_gateway(request: Request) -> Gateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise StorageUnavailable("gateway is not initialized")
    return gateway


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@router.get("/")
def service_info() -> Dict[str, Any]:
    return {"service": "schemagate", "version": __version__, "endpoints": ENDPOINTS}


@router.get("/ping")
def ping() -> Dict[str, str]:
    return {"message": "pong"}


# ---------------------------------------------------------------------------
# Databases / collections / schema
# ---------------------------------------------------------------------------


@router.post("/allocate")
def allocate(
    body: Optional[AllocateRequest] = Body(default=None),
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Create or return the database scope named in the body (generated if omitted)."""
    handle = gateway.allocate(body.name if body else None)
    return handle.to_dict()


@router.get("/collections/{db}")
def list_collections(db: str, gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    return {"database": db, "collections": gateway.list_collections(db)}


@router.get("/detect-schema/{db}/{collection}")
def detect_schema(
    db: str,
    collection: str,
    response: Response,
    sample_size: Optional[int] = Query(default=None, ge=1),
    refresh: bool = False,
    strict: bool = False,
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Return the inferred SchemaShape as-is; sampling metadata travels in headers."""
    shape = gateway.detect_schema(db, collection, sample_size=sample_size, refresh=refresh, strict=strict)
    response.headers["X-Sample-Size"] = str(shape.sample_size)
    response.headers["X-Sample-Empty"] = "true" if shape.sample_empty else "false"
    return shape.to_dict()


@router.put("/schema/{db}/{collection}")
def add_schema_fields(
    db: str,
    collection: str,
    body: AddFieldsRequest,
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    modified = gateway.add_fields(db, collection, body.fields)
    return {"success": True, "modified": modified, "fields": sorted(body.fields)}


@router.delete("/schema/{db}/{collection}/{field_path:path}")
def remove_schema_field(
    db: str,
    collection: str,
    field_path: str,
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    modified = gateway.remove_field(db, collection, field_path)
    return {"success": True, "modified": modified, "field": field_path}


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


def _parse_filter(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidRequest("filter must be a JSON object")
    if not isinstance(parsed, dict):
        raise InvalidRequest("filter must be a JSON object")
    return parsed


@router.get("/entries/{db}/{collection}")
def list_entries(
    db: str,
    collection: str,
    response: Response,
    offset: int = Query(default=0, ge=0),
    limit: Optional[int] = Query(default=None, ge=1),
    filter: Optional[str] = Query(default=None),
    gateway: Gateway = Depends(get_gateway),
    config: AppConfig = Depends(get_app_config),
) -> List[Dict[str, Any]]:
    """One page of documents; ``X-Next-Offset`` is set when more may follow."""
    page_size = limit or config.server.page_size
    if page_size > config.server.max_page_size:
        raise InvalidRequest(f"limit must be at most {config.server.max_page_size}")

    cursor = gateway.list_entries(db, collection, _parse_filter(filter), offset=offset, limit=page_size)
    documents = cursor.page()
    if len(documents) == page_size:
        response.headers["X-Next-Offset"] = str(offset + page_size)
    return documents


@router.post("/entry/{db}/{collection}", status_code=201)
def create_entry(
    db: str,
    collection: str,
    document: Dict[str, Any] = Body(...),
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return gateway.create_entry(db, collection, document)


@router.get("/entry/{db}/{collection}/{doc_id}")
def read_entry(db: str, collection: str, doc_id: str, gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    return gateway.read_entry(db, collection, doc_id)


@router.put("/entry/{db}/{collection}/{doc_id}")
def update_entry(
    db: str,
    collection: str,
    doc_id: str,
    partial: Dict[str, Any] = Body(...),
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return gateway.update_entry(db, collection, doc_id, partial)


@router.delete("/entry/{db}/{collection}/{doc_id}")
def delete_entry(db: str, collection: str, doc_id: str, gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    gateway.delete_entry(db, collection, doc_id)
    return {"success": True, "id": doc_id}
