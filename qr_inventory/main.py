"""
QR Inventory FastAPI Main Application
Entry point for the stock ledger REST API
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qr_inventory.api.v1.api_router import api_router
from qr_inventory.core.config import settings
from qr_inventory.core.database import check_db_connection, init_db
from qr_inventory.core.exceptions import InventoryError
from qr_inventory.core.logging import get_logger

logger = get_logger("api")

# Error code -> HTTP status
ERROR_STATUS = {
    "NOT_FOUND": 404,
    "INVALID_STATE": 409,
    "INACTIVE": 409,
    "ITEM_BLOCKED": 409,
    "ALREADY_BLOCKED": 409,
    "ALREADY_PROCESSED": 409,
    "DUPLICATE_LOCATION": 409,
    "INSUFFICIENT_STOCK": 400,
    "INVALID_REQUEST": 400,
    "STORAGE_FAILURE": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown

    Verifies the database and creates missing tables
    """
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting")
    if not check_db_connection():
        logger.error(f"Database unreachable at startup ({settings.DATABASE_URL})")
        raise RuntimeError("Database connection failed")
    init_db()
    logger.info("Ledger tables ready")
    yield
    logger.info(f"{settings.APP_NAME} stopping")


def create_app(run_startup: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
    ## QR Inventory API

    Warehouse stock ledger for 17-character QR coded items.

    ### Stock buckets:
    - **unrestrict**: unrestricted stock
    - **foc**: free-of-charge stock
    - **rfb**: returnable stock
    """,
        docs_url=settings.DOCS_URL,
        openapi_url=settings.OPENAPI_URL,
        lifespan=lifespan if run_startup else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"])
    def health_check():
        """Liveness plus database connectivity"""
        try:
            db_status = check_db_connection()
        except Exception as e:
            logger.error(f"Health probe could not reach the database: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")

        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
        }

    @app.exception_handler(InventoryError)
    async def inventory_exception_handler(request: Request, exc: InventoryError):
        status_code = ERROR_STATUS.get(exc.code, 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} - {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Anything that is not an InventoryError becomes a JSON 500"""
        logger.error(f"{request.method} {request.url.path} crashed: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "INTERNAL_ERROR",
                "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            },
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "qr_inventory.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
