"""judicial-core service entry point.

Initializes the FastAPI application with:
- Primary database for subjects, cases, decisions, documents and pseudonyms
- Audit Wall database connection for the hash-chained audit log
- The process-wide AuditLog and its drain worker
- One exception handler mapping JudicialCoreError to JSON responses
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from judicial_core.adapters.audit_wall import close_audit_db, get_audit_session_factory, init_audit_db
from judicial_core.adapters.database import close_database, init_database
from judicial_core.api.router import router
from judicial_core.core.audit import AuditLog
from judicial_core.errors import JudicialCoreError
from judicial_core.observability import configure_logging, get_logger
from judicial_core.settings import Settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    settings: Settings = getattr(app.state, "settings", None) or Settings()
    configure_logging(settings.environment, settings.log_level)

    # Startup: primary database
    logger.info("Initializing primary database", service=settings.service_name)
    await init_database(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )

    # Startup: Audit Wall
    logger.info("Initializing Audit Wall database", pool_size=settings.audit_db_pool_size)
    await init_audit_db(
        audit_db_url=settings.effective_audit_db_url,
        pool_size=settings.audit_db_pool_size,
        max_overflow=settings.audit_db_max_overflow,
    )

    audit_log = AuditLog(
        session_factory=get_audit_session_factory(),
        instance_id=settings.instance_id,
        export_limit=settings.audit_export_limit,
        record_timeout=settings.audit_record_timeout_seconds,
    )

    app.state.settings = settings
    app.state.audit_log = audit_log

    logger.info("judicial-core startup complete", instance_id=settings.instance_id)

    yield

    # Shutdown
    logger.info("Shutting down judicial-core")
    await audit_log.close()
    await close_audit_db()
    await close_database()
    logger.info("judicial-core shutdown complete")


async def judicial_core_error_handler(request: Request, exc: JudicialCoreError) -> JSONResponse:
    """Map a JudicialCoreError to its status code and a JSON body."""
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error_code=exc.error_code)
    else:
        logger.info("Request rejected", path=request.url.path, error_code=exc.error_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error_code": exc.error_code, "message": exc.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(JudicialCoreError, judicial_core_error_handler)  # type: ignore[arg-type]


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Explicit settings; resolved from the environment at startup when omitted.

    Returns:
        The configured application.
    """
    application = FastAPI(title="judicial-core", version="0.1.0", lifespan=lifespan)
    if settings is not None:
        application.state.settings = settings
    register_exception_handlers(application)
    application.include_router(router, prefix="/api/v1")

    @application.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return application


app: FastAPI = create_app()
