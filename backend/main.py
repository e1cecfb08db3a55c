from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
import logging
from contextlib import asynccontextmanager

from sis_sync.core.config import settings
from sis_sync.core.database import init_db, AsyncSessionLocal
from sis_sync.api.v1 import sync, powerschool
from sis_sync.integrations.sis.error_handler import SISError
from sis_sync.repositories.settings import CredentialStore
from sis_sync.services.sync.ledger import SyncLedger

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


async def prepare_store() -> None:
    """Seed PowerSchool settings from PS_* values and prune old sync jobs."""
    async with AsyncSessionLocal() as session:
        await CredentialStore(session).seed(
            endpoint=settings.PS_ENDPOINT,
            client_id=settings.PS_CLIENT_ID,
            client_secret=settings.PS_CLIENT_SECRET,
            school_id=settings.PS_SCHOOL_ID,
        )
        await SyncLedger(session).cleanup(settings.SYNC_LOG_RETENTION_DAYS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    # Initialize database
    await init_db()
    await prepare_store()

    yield


app = FastAPI(
    title="PowerSchool Sync API",
    description="Synchronizes PowerSchool reference data into the report card database",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(sync.router, prefix="/api/v1/sync", tags=["sync"])
app.include_router(powerschool.router, prefix="/api/v1/powerschool", tags=["powerschool"])


@app.get("/")
async def root():
    return {"message": "PowerSchool Sync API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": "1.0.0"}


@app.exception_handler(SISError)
async def sis_exception_handler(request, exc: SISError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "error_type": exc.error_type}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "status_code": exc.status_code}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "error_type": type(exc).__name__}
    )


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug"
    )
