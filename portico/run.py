from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from narthex import Config, __version__
from narthex.FileSystemGate import FileSystemGate
from narthex.FileSystemGate.models import ErrorKind
from narthex.shared.gate import GateLogger

from portico import lifecycle
from portico.api import events as events_api
from portico.api import files as files_api
from portico.api import health as health_api
from portico.middleware.logging import RequestLoggingMiddleware
from portico.services.events import EventBus, build_emitter

_log = GateLogger.get("HTTP")


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("query", "body"))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def create_app() -> FastAPI:
    app = FastAPI(title="Narthex", version=__version__)

    event_bus = EventBus()
    emit_event = build_emitter(event_bus)
    app.state.event_bus = event_bus

    @app.on_event("startup")
    async def startup_event():
        await lifecycle.startup(emit_event)

    @app.on_event("shutdown")
    async def shutdown_event():
        await lifecycle.shutdown(emit_event)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": _describe_validation_error(exc), "kind": ErrorKind.INVALID_INPUT.value},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        _log.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "kind": ErrorKind.IO_ERROR.value},
        )

    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/ping")
    async def ping():
        """Liveness probe."""
        return {"message": "pong"}

    app.include_router(files_api.create_router(FileSystemGate, emit_event))
    app.include_router(health_api.create_router(FileSystemGate))
    app.include_router(events_api.create_router(event_bus))

    return app


app = create_app()


def main() -> None:
    """Entry point for `narthex-serve`."""
    uvicorn.run(
        app,
        host=Config.get("NARTHEX_HOST", "0.0.0.0"),
        port=int(Config.get("NARTHEX_PORT", 8080)),
        log_level=str(Config.get("NARTHEX_LOG_LEVEL", "INFO")).lower(),
    )


if __name__ == "__main__":
    main()
