# glowglitch/core/responses.py
"""
Uniform response envelope.

Every endpoint answers with:
  success -> {"success": true,  "data": ..., "meta": {"timestamp", "version"}}
  failure -> {"success": false, "error": {"code", "message", "details"?}, "meta": {"timestamp", "requestId"}}
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

API_VERSION = "1.0.0"

T = TypeVar("T")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class SuccessMeta(BaseModel):
    timestamp: str
    version: str = API_VERSION


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    meta: SuccessMeta


class MessageOut(BaseModel):
    message: str


def ok(data: Any) -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "meta": {"timestamp": _timestamp(), "version": API_VERSION},
    }


def fail(code: str, message: str, status_code: int = 400, details: Optional[Any] = None) -> JSONResponse:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "success": False,
                "error": error,
                "meta": {"timestamp": _timestamp(), "requestId": str(uuid.uuid4())},
            }
        ),
    )
