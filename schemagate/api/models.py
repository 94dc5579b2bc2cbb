"""Pydantic request/response models for the HTTP surface.

Documents and schema shapes are returned as plain JSON objects, so only
the request bodies and the error envelope are modelled here.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Structured error payload."""

    kind: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    success: bool = False
    error: ErrorDetail


class AllocateRequest(BaseModel):
    """Body of POST /allocate. Omit ``name`` to have one generated."""

    name: Optional[str] = None


class AddFieldsRequest(BaseModel):
    """Body of PUT /schema/{db}/{collection}: field path → default value."""

    fields: Dict[str, Any] = Field(default_factory=dict)
