"""Response envelopes shared by every route."""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={'success': True, 'data': jsonable_encoder(data), 'timestamp': _timestamp()},
    )


def error_body(message: str) -> Dict[str, Any]:
    return {'success': False, 'error': message, 'timestamp': _timestamp()}


def error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(message))
