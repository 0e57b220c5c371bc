from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from .core.config import settings
from .core.database import create_tables, close_db, ping_database
from .core.exceptions import HarviError
from .api import auth, admin, public
import logging
import sys
import time

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Harvi Content API...")
    try:
        await create_tables()
        logger.info("Application startup completed successfully")
        yield
    except Exception as e:
        logger.error(f"Error during application startup: {e}")
        raise
    finally:
        logger.info("Shutting down Harvi Content API...")
        await close_db()


def _origins() -> list:
    return [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()] or ["*"]


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Year -> Module -> Subject -> Lecture content and quiz API",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(HarviError)
async def harvi_exception_handler(request: Request, exc: HarviError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url}: {exc.message}")
    else:
        logger.warning(f"{exc.kind}/{exc.code} on {request.method} {request.url}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    # loc is ("body", "questions", 0, "options", ...); drop the location prefix
    location = [str(part) for part in first.get("loc", ())[1:]]
    field = ".".join(location) or None
    logger.warning(f"Invalid request on {request.method} {request.url}: {errors}")
    return JSONResponse(
        status_code=422,
        content={
            "kind": "ValidationError",
            "code": "InvalidRequest",
            "field": field,
            "id": None,
            "message": first.get("msg", "Invalid request"),
            "retryable": False,
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.error(f"HTTP {exc.status_code} error on {request.url}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


# Include API routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(public.router, prefix="/api", tags=["Public"])


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - API health check"""
    return {
        "message": "Harvi Content API is running",
        "version": settings.app_version,
        "status": "healthy"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint; 503 when the database cannot be reached"""
    try:
        await ping_database()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "service": settings.app_name,
                "database": "unreachable",
                "error": str(e)
            }
        )

    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "database": "connected"
    }


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with their duration"""
    started = time.perf_counter()
    logger.info(f"Incoming request: {request.method} {request.url}")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Request failed: {request.method} {request.url} - Error: {str(e)}")
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"Request completed: {request.method} {request.url} - Status: {response.status_code} "
                f"in {elapsed_ms:.1f}ms")
    return response
