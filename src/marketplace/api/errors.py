"""Translate domain errors into ``{"error": {"code", "message"}}`` responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from marketplace.errors import GatewayError, MarketplaceError

logger = structlog.get_logger(__name__)


def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


def _describe(messages) -> str:
    if isinstance(messages, dict):
        return "; ".join(
            f"{field}: {', '.join(map(str, errors)) if isinstance(errors, list) else errors}"
            for field, errors in messages.items()
        )
    return str(messages)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketplaceError)
    async def marketplace_error(request: Request, exc: MarketplaceError):
        if isinstance(exc, GatewayError):
            logger.error("Payment gateway error", path=request.url.path, error=exc.message, cause=repr(exc.__cause__))
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return error_response(400, "validation_error", _describe(exc.messages), jsonable_encoder(exc.messages))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        message = "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in errors)
        return error_response(400, "validation_error", message, errors)

    @app.exception_handler(ObjectNotFoundError)
    async def not_found(request: Request, exc: ObjectNotFoundError):
        return error_response(404, "not_found", _describe(exc.args[0] if exc.args else "Not found"))
