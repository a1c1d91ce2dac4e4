from datetime import datetime
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional


def _envelope(ok: bool, message: str, data: Any, errors: Optional[List[Any]]) -> Dict[str, Any]:
    return {"success": ok, "message": message, "data": data, "errors": errors}


def success(data: Optional[Any] = None, message: str = "Success", meta: Optional[Dict] = None):
    """Body for 2xx responses. Decimal money values come out as strings when
    the caller dumps its pydantic models with ``mode="json"`` first."""
    body = _envelope(True, message, data, None)
    if meta is not None:
        body["meta"] = meta
    return jsonable_encoder(body)


def paginated_response(items, total: int, page: int, limit: int, message: str = "Success"):
    pages = (total + limit - 1) // limit if limit else 0
    return success(
        data=items,
        message=message,
        meta={"total": total, "page": page, "limit": limit, "total_pages": pages},
    )


def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Any]] = None,
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    body = _envelope(False, message, None, errors or [])
    body["timestamp"] = f"{datetime.utcnow().isoformat()}Z"
    if correlation_id:
        body["correlation_id"] = correlation_id
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
