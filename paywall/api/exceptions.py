from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


def _invalid_fields(exc: RequestValidationError) -> list[str]:
    fields: list[str] = []
    for item in exc.errors():
        loc = item.get("loc") or ()
        if isinstance(loc, (list, tuple)) and len(loc) >= 2:
            fields.append(str(loc[-1]))
    return sorted(set(fields))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = _invalid_fields(exc)
        logger.info("request_validation_failed", path=request.url.path, fields=fields)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body", "fields": fields},
        )
