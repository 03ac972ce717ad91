from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from erp.config import settings
from erp.database import init_db, close_db, get_db
from erp.errors import ErpError
from erp.logging_config import setup_logging
from erp.middleware.correlation import CorrelationIdMiddleware

# Import models so they are registered with Base.metadata
import erp.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_erp", env=settings.ENVIRONMENT, version=settings.APP_VERSION)
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# --- Middleware ---
app.add_middleware(CorrelationIdMiddleware)


# ---------------------------------------------------------------------------
# Global exception handlers: every domain error becomes
# {"error": {"code": "...", "message": "..."}} with the status it declares.
# ---------------------------------------------------------------------------

@app.exception_handler(ErpError)
async def erp_error_handler(request: Request, exc: ErpError) -> JSONResponse:
    logger.info(
        "domain_error",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": exc.errors(),
            }
        },
    )


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except SQLAlchemyError as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from erp.routes.accounts_payable import router as ap_router  # noqa: E402

app.include_router(ap_router, prefix="/api/v1/accounts-payable", tags=["Accounts Payable"])
