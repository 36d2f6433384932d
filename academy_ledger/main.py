# academy_ledger/main.py - FastAPI application, logging and error mapping
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
import logging
import traceback
import time

from academy_ledger.core.config import settings
from academy_ledger.core.db import get_engine, get_session_maker, health_check as db_health_check
from academy_ledger.core.exceptions import LedgerError
from academy_ledger.models.base import Base
from academy_ledger.api.routers import course_fees, registrations, payment_plans, payments
from academy_ledger.api.routers import finance, wallets
from academy_ledger.api.routers import settings as settings_router
from academy_ledger.services.settings_service import ledger_config

LOG_FORMATS = {
    "simple": "%(levelname)s - %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def configure_logging():
    """Configure root logging once from settings"""
    fmt = LOG_FORMATS.get(settings.LOG_FORMAT, LOG_FORMATS["detailed"])
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE_PATH:
        handlers.append(RotatingFileHandler(
            settings.LOG_FILE_PATH,
            maxBytes=settings.LOG_MAX_SIZE,
            backupCount=settings.LOG_BACKUP_COUNT,
        ))
    logging.basicConfig(level=settings.LOG_LEVEL, format=fmt, handlers=handlers)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting Academy Ledger API...")
    logger.info(f"Environment: {settings.ENV}")
    logger.info(f"Database URL: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'local'}")

    engine = get_engine()

    # Migrations own the schema outside development
    if settings.is_development:
        logger.info("Creating database tables...")
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Error creating tables: {e}")

    session = get_session_maker()()
    try:
        ledger_config.reload(session)
    except Exception as e:
        logger.error(f"Could not load ledger settings, using environment defaults: {e}")
    finally:
        session.close()

    yield

    logger.info("Shutting down Academy Ledger API...")


app = FastAPI(
    title=settings.API_TITLE,
    description="Course fee plans, late payment penalties and payment allocation",
    version=settings.API_VERSION,
    docs_url="/docs" if settings.is_development and settings.DEV_SHOW_DOCS else None,
    redoc_url="/redoc" if settings.is_development and settings.DEV_SHOW_DOCS else None,
    lifespan=lifespan
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request"""
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {str(e)}")
        raise

    process_time = time.time() - start_time
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")
    return response


app.add_middleware(CORSMiddleware, **settings.get_cors_config())


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Map ledger errors to their HTTP status"""
    level = logging.WARNING if exc.http_status < 500 else logging.ERROR
    logger.log(level, f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}")
    logger.error(traceback.format_exc())

    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "detail": str(exc),
                "traceback": traceback.format_exc()
            }
        )
    return JSONResponse(
        status_code=500,
        content={"success": False, "detail": "Internal server error"}
    )


@app.get("/health")
async def health_check():
    database = db_health_check()
    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "environment": settings.ENV,
        "version": settings.API_VERSION,
        "database": database,
    }


logger.info("Registering API routers...")
app.include_router(course_fees.router, prefix="/course-fees", tags=["Course Fees"])
app.include_router(registrations.router, prefix="/registrations", tags=["Registrations"])
app.include_router(payment_plans.router, prefix="/student-payment-plans", tags=["Payment Plans"])
app.include_router(payments.router, prefix="/student-payments", tags=["Payments"])
app.include_router(finance.router, prefix="/student-finance", tags=["Student Finance"])
app.include_router(wallets.router, prefix="/wallets", tags=["Wallets"])
app.include_router(settings_router.router, prefix="/settings", tags=["Settings"])
logger.info("All routers registered successfully")


@app.get("/")
async def root():
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs_url": "/docs" if app.docs_url else "Documentation disabled",
    }
