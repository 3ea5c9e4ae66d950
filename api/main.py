import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import Settings
from dependencies import ServiceContainer
from logging_config import setup_logging
from routers import email_validation, signup, status
from utils.errors import RateLimited, SignupError, client_message

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An internal error occurred. Our team has been notified. Please try again later."


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    settings = settings or (container.settings if container else Settings())

    app = FastAPI(
        title="PayNomad Signup API",
        version="1.0.0",
        description="Application intake and email OTP verification for the e-banking signup funnel",
    )
    app.state.container = container or ServiceContainer(settings)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include Routers
    app.include_router(status.router)
    app.include_router(signup.router, tags=["Signup"])
    app.include_router(email_validation.router)

    # Exception handlers
    @app.exception_handler(SignupError)
    async def signup_error_handler(request: Request, exc: SignupError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc} {exc.details or ''}")
        headers = None
        if isinstance(exc, RateLimited) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": client_message(exc, GENERIC_ERROR_MESSAGE)},
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected request body on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"message": "Invalid request body."},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error on {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"message": GENERIC_ERROR_MESSAGE},
        )

    return app


settings = Settings()
setup_logging(settings.LOG_LEVEL)
app = create_app(settings)
