from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from garment_synth.config import IS_DEVELOPMENT, logger
from garment_synth.core.errors import (
    GarmentSynthError,
    RateLimitExceeded,
    public_message_for,
)
from garment_synth.services.container import ServiceContainer, build_services

from .routers import router
from .routers.tryon.models import ErrorResponse


def _error_response(
    status_code: int,
    error: str,
    details: Optional[str],
    development: bool,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, details=details if development else None)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def create_app(
    services: Optional[ServiceContainer] = None,
    development: bool = IS_DEVELOPMENT,
) -> FastAPI:
    """Build the FastAPI application around a service container."""

    app = FastAPI(
        title="Garment Synthesis API",
        description="Orchestrates virtual try-on synthesis across remote image providers",
        version="1.0.0",
    )
    app.state.services = services or build_services()
    app.state.development = development

    app.include_router(router)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    @app.exception_handler(GarmentSynthError)
    async def handle_synthesis_error(
        request: Request, exc: GarmentSynthError
    ) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "Request failed",
            extra={"path": request.url.path, "kind": exc.kind, "status": exc.status_code},
        )

        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {"Retry-After": str(exc.retry_after)}

        details = exc.details if exc.details is not None else exc.message
        return _error_response(
            exc.status_code,
            public_message_for(exc),
            str(details),
            app.state.development,
            headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = ", ".join(
            ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
            for error in exc.errors()
        )
        return _error_response(
            400,
            f"Invalid request: {fields}",
            str(exc.errors()),
            app.state.development,
        )

    logger.info(
        "Garment Synthesis API initialized successfully",
        extra={"provider": app.state.services.provider.name},
    )
    return app


app = create_app()
