"""The ``{success, data, error, message}`` envelope every route answers with."""
from typing import Any, Dict, Iterable, Optional, Type

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from bikefine.schemas.base import CamelModel


def success_response(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    content: Dict[str, Any] = {"success": True}
    if data is not None:
        content["data"] = jsonable_encoder(data)
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def error_response(error: str, status_code: int, message: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": error}
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def serialize(obj: Any, schema: Type[CamelModel], **extra: Any) -> Dict[str, Any]:
    """Dump an ORM row through its output schema; ``extra`` adds derived fields."""
    if extra:
        values = {
            name: getattr(obj, name)
            for name in schema.model_fields
            if name not in extra and hasattr(obj, name)
        }
        return schema.model_validate({**values, **extra}).to_json()
    return schema.model_validate(obj).to_json()


def serialize_many(rows: Iterable[Any], schema: Type[CamelModel]):
    return [serialize(row, schema) for row in rows]


def paginated(result: Dict[str, Any], items) -> Dict[str, Any]:
    """Swap the ORM rows of a paginate() result for their serialized form."""
    return {
        "data": items,
        "total": result["total"],
        "page": result["page"],
        "limit": result["limit"],
        "totalPages": result["totalPages"],
    }
