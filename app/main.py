"""
Main FastAPI Application for the Madagascar License Eligibility Engine
Category rules, prerequisite resolution, eligibility validation and workflow submission
"""

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time
import logging

from app.core.config import get_settings
from app.core.database import create_tables, check_database_connection, get_session_factory
from app.core.exceptions import ConfigurationError
from app.api.v1.api import api_router
from app.services.category_rules import get_registry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events
    Loads and validates the category rule registry once; a defective table aborts startup
    """
    # Startup
    logger.info("Starting Madagascar License Eligibility Engine...")
    try:
        registry = get_registry()
    except ConfigurationError as e:
        logger.critical(f"Category rule table is defective: {e}")
        raise
    logger.info(f"Loaded {len(registry.categories)} license category rules")

    yield

    # Shutdown
    logger.info("Shutting down Madagascar License Eligibility Engine...")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Madagascar Driver's License Eligibility and Workflow Engine",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to response headers"""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


@app.exception_handler(ConfigurationError)
async def handle_configuration_error(request: Request, exc: ConfigurationError):
    """Defective rule table: log for the operator, never ask the applicant to fix it"""
    logger.error(f"Configuration error while handling {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "type": "configuration_error",
            "status_code": 500
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database connection test"""
    db_connected, db_message = check_database_connection()

    health_status = {
        "status": "healthy" if db_connected else "unhealthy",
        "version": settings.VERSION,
        "system": settings.PROJECT_NAME,
        "timestamp": time.time(),
        "database": {
            "connected": db_connected,
            "message": db_message
        },
        "rules": {
            "categories": len(get_registry().categories)
        }
    }

    # Return 503 if database is not connected
    if not db_connected:
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with basic system information"""
    return {
        "message": "Madagascar License Eligibility Engine API",
        "version": settings.VERSION,
        "docs_url": f"{settings.API_V1_STR}/docs",
        "redoc_url": f"{settings.API_V1_STR}/redoc",
        "api_base": settings.API_V1_STR
    }


@app.post("/admin/init-tables", tags=["Admin"])
def initialize_tables():
    """Create missing database tables"""
    create_tables()
    logger.info("Database tables created")
    return {"status": "success", "message": "Database tables created", "timestamp": time.time()}


@app.post("/admin/init-fee-structures", tags=["Admin"])
def initialize_fee_structures():
    """Seed the default fee schedule (existing fee types are left untouched)"""
    from app.crud import fee_structure as crud_fee_structure

    db = get_session_factory()()
    try:
        created = crud_fee_structure.initialize_default_fees(db)
        return {
            "status": "success",
            "message": f"Created {len(created)} fee structures",
            "total_created": len(created),
            "fee_types": [fee.fee_type for fee in created],
            "timestamp": time.time()
        }
    finally:
        db.close()


# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
