"""Pydantic response schemas for the tenderLens API.

The ingest endpoint streams :class:`~src.models.pipeline.ProgressEvent`
objects as NDJSON, so only the plain JSON responses are modelled here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body.

    ``error`` is the human-readable message, ``detail`` the error class.
    """

    error: str
    detail: str | None = None
