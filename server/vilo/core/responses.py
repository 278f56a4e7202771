"""Success side of the uniform `{success, data, error, meta}` envelope."""

import math
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return jsonable_encoder(data)


def success_response(
    data: Any,
    status_code: int = 200,
    meta: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Wrap `data` in the success envelope."""
    envelope_meta: Dict[str, Any] = {}
    if request is not None:
        envelope_meta["request_id"] = getattr(request.state, "request_id", None)
    if meta:
        envelope_meta.update(jsonable_encoder(meta))

    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "data": _dump(data),
            "error": None,
            "meta": envelope_meta or None,
        },
    )


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
