import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from storefront.api.routes import auth, health
from storefront.core.config import Settings, settings as default_settings
from storefront.core.error_codes import ErrorCode
from storefront.core.exceptions import AppException, StartupError
from storefront.db.session import Database
from storefront.schemas.common import ErrorResponse
from storefront.services.auth_flow import AuthFlowController
from storefront.services.email import EmailDispatcher, build_email_dispatcher

logger = logging.getLogger(__name__)


def _error(status_code: int, code: ErrorCode, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error_code=code, **extra).model_dump(mode="json"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    s: Settings = app.state.settings
    if s.DB_INIT_ON_STARTUP:
        try:
            await app.state.database.ensure_ready()
        except StartupError as exc:
            # stay up; the next request retries initialization
            logger.error("Database not ready at startup: %s", exc.message)
    await app.state.mailer.check()
    yield
    await app.state.database.dispose()


def create_app(settings: Settings | None = None, email_dispatcher: EmailDispatcher | None = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Storefront API", version="0.1.0", lifespan=lifespan)

    database = Database(settings)
    mailer = email_dispatcher or build_email_dispatcher(settings)
    app.state.settings = settings
    app.state.database = database
    app.state.mailer = mailer
    app.state.auth_flow = AuthFlowController(settings, database, mailer)

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return _error(exc.status_code, exc.error_code, exc.message, **exc.extra)

    @app.exception_handler(StartupError)
    async def startup_error_handler(request: Request, exc: StartupError):
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.error_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
        return _error(status.HTTP_400_BAD_REQUEST, ErrorCode.INVALID_INPUT, "Invalid request body.", fields=fields)

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error: %s", exc.orig)
        return _error(status.HTTP_409_CONFLICT, ErrorCode.UNIQUE_CONSTRAINT_VIOLATION, "Unique constraint violated.")

    @app.exception_handler(SQLAlchemyError)
    async def sa_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error", exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.DATABASE_ERROR, "Server error.")

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.error("Unhandled error", exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_ERROR, "Server error.")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # root paths plus the prefixes older clients and already-sent links use
    app.include_router(auth.router)
    app.include_router(auth.router, prefix="/auth", include_in_schema=False)
    app.include_router(auth.router, prefix="/api/auth", include_in_schema=False)
    # the storefront pages call /api/profile and /api/change-password
    app.include_router(auth.router, prefix="/api", include_in_schema=False)
    app.include_router(health.router)
    app.include_router(health.router, prefix="/api", include_in_schema=False)
    return app


app = create_app()
