"""
FoodStock FastAPI Main Application
Entry point for the multi-location food inventory REST API
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from foodstock.core.config import settings
from foodstock.core.database import check_db_connection, init_db
from foodstock.core.exceptions import FoodStockException
from foodstock.core.logging import setup_logging, setup_uvicorn_logging, get_logger
from foodstock.api.v1.api_router import api_router

setup_logging()
logger = get_logger("api")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## FoodStock API

    Stock control for kitchens and stores running on period-locked prices.

    ### Key Features:
    - **Deliveries**: Receipts with weighted average costing and automatic price-variance NCRs
    - **Issues**: Consumption at WAC with all-or-nothing stock checks
    - **Transfers**: Inter-location moves with supervisor approval
    - **Periods**: Locked prices, location readiness, approved close with stock snapshots
    - **Reconciliation**: Consumption and manday cost per location
    """,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trusted host middleware for production
if not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    db_status = check_db_connection()
    if not db_status:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "database": "connected",
        "debug": settings.DEBUG
    }


# System information endpoint
@app.get("/info", tags=["System"])
async def system_info():
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_prefix": settings.API_PREFIX,
        "docs_url": settings.DOCS_URL,
        "currency": settings.DEFAULT_CURRENCY,
        "wac_decimal_places": settings.WAC_DECIMAL_PLACES,
        "features": [
            "Deliveries and WAC",
            "Issues",
            "Inter-location Transfers",
            "Period Close and Roll-forward",
            "Non-Conformance Reports",
            "Reconciliation and Manday Cost"
        ]
    }


# Application startup event
@app.on_event("startup")
async def startup_event():
    """
    Application startup tasks

    Verify the database and create missing tables
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection():
        logger.error("Failed to connect to database on startup")
        raise RuntimeError("Database connection failed")

    logger.info("Database connection established")
    init_db()
    logger.info("Application startup completed successfully")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")


@app.exception_handler(FoodStockException)
async def foodstock_exception_handler(request: Request, exc: FoodStockException):
    """Business errors keep their status, code and details"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors

    Args:
        request: FastAPI request object
        exc: Exception that occurred

    Returns:
        JSON error response
    """
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "code": "INTERNAL_ERROR",
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "details": None
        }
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    setup_uvicorn_logging()

    uvicorn.run(
        "foodstock.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
