"""Response envelope helpers: every JSON response is {success, data | error}."""

from collections.abc import Callable
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from buildtrack.domain.results import CoreError, Result


def success(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": jsonable_encoder(data)})


def failure(error: CoreError, debug_id: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": error.to_dict()}
    if debug_id:
        content["debug_id"] = debug_id
    return JSONResponse(status_code=error.kind.http_status, content=jsonable_encoder(content))


def respond(
    result: Result,
    serialize: Callable[[Any], Any] | None = None,
    status_code: int = 200,
) -> JSONResponse:
    """Translate a core Result into an envelope, mapping the error kind to its HTTP status."""
    if not result.success:
        return failure(result.error)
    data = serialize(result.data) if serialize is not None else result.data
    return success(data, status_code=status_code)
