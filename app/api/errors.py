from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import InsufficientTokens, ServiceError
from app.database.exceptions import StorageError
from app.logging.logger import Log
from app.payments.exceptions import GatewayConfigError, GatewayError


def _error(status_code: int, message: str, code: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code, **extra})


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, InsufficientTokens):
        return _error(
            exc.status_code,
            exc.message,
            exc.code,
            currentTokens=exc.current,
            requiredTokens=exc.required,
        )
    return _error(exc.status_code, exc.message, exc.code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
    return _error(400, f"Invalid request body: {fields}", "invalid_request")


async def gateway_config_error_handler(request: Request, exc: GatewayConfigError) -> JSONResponse:
    Log.error(f"{request.method} {request.url.path}: payment gateway misconfigured: {exc}")
    return _error(500, "Server not configured for payments", "gateway_not_configured")


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    Log.error(f"{request.method} {request.url.path}: payment gateway error: {exc}")
    return _error(502, "Payment provider request failed", "gateway_error")


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    Log.error(f"{request.method} {request.url.path}: storage error: {exc}")
    return _error(500, "Internal storage error", "storage_error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(GatewayConfigError, gateway_config_error_handler)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
