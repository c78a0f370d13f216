import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from bikefine.api.responses import error_response
from bikefine.api.v1.routers import (
    admin_auth,
    admin_uploads,
    admin_users,
    admin_violations,
    auth,
    cases,
    health,
    payments,
    queries,
    stats,
    users,
)
from bikefine.core.config import Settings, settings
from bikefine.core.database import Database
from bikefine.core.exceptions import DatabaseConfigError, ServiceError

logger = logging.getLogger(__name__)


def configure_logging(level: str = settings.LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _validation_message(errors) -> str:
    if not errors:
        return "Invalid request"
    error = errors[0]
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    message = error.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {message}" if loc else message


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return error_response(str(exc.detail), exc.status_code)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("Service error on %s %s: %s", request.method, request.url.path, exc.message)
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(_validation_message(exc.errors()), 400)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return error_response(_validation_message(exc.errors()), 400)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return error_response("Too many requests", 429, message=f"Rate limit exceeded: {exc.detail}")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response("Internal server error", 500)


def create_app(database: Optional[Database] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        - database (Optional[Database]): Connection handle; defaults to one built from settings.
        - app_settings (Optional[Settings]): Overrides the module settings.

    Returns:
        - FastAPI: The configured app with every router mounted under ``/api``.
    """
    app_settings = app_settings or settings
    database = database or Database(
        app_settings.DATABASE_URL,
        name=app_settings.DATABASE_NAME,
        echo=app_settings.DATABASE_ECHO,
    )

    upload_dir = app_settings.upload_dir

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(app_settings.LOG_LEVEL)
        for kind in ("images", "videos"):
            (upload_dir / kind).mkdir(parents=True, exist_ok=True)
        try:
            await database.create_all()
            logger.info("Database ready: %s", database.name)
        except DatabaseConfigError as e:
            logger.warning("Starting without a database: %s", e)
        yield
        await database.dispose()

    app = FastAPI(
        title=app_settings.API_TITLE,
        version=app_settings.API_VERSION,
        lifespan=lifespan,
    )

    app.state.database = database
    app.state.upload_dir = upload_dir
    app.state.max_upload_bytes = app_settings.max_upload_bytes
    app.state.limiter = auth.limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    for module in (auth, users, cases, queries, payments, stats, health,
                   admin_auth, admin_violations, admin_users, admin_uploads):
        app.include_router(module.router, prefix="/api")

    app.mount("/uploads", StaticFiles(directory=str(upload_dir), check_dir=False), name="uploads")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bikefine.main:app", host="0.0.0.0", port=8000, reload=settings.ENVIRONMENT == "development")
