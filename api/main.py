"""
D Directory API (FastAPI backend)
Contractor directory with subscription-gated lead intake
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from errors import DirectoryError
from routers import admin, auth, contractors, leads, plans, project_types
from services import geo
from services.auth import ensure_manager_user
from services.seed import seed_demo_data
from storage import build_storage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    storage = build_storage(settings.STORAGE_BACKEND, settings.DATABASE_URL, echo=settings.DEBUG)
    await storage.init()
    app.state.storage = storage
    if settings.SEED_DEMO_DATA:
        await seed_demo_data(storage)
    await ensure_manager_user(storage, settings.MANAGER_USERNAME, settings.MANAGER_PASSWORD)
    logger.info("D Directory API started (storage=%s)", settings.STORAGE_BACKEND)
    yield
    # Shutdown
    await geo.close()
    await storage.close()
    logger.info("D Directory API shut down")


app = FastAPI(
    title="D Directory API",
    description="Contractor directory with plan-metered lead intake",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error handlers ─────────────────────────────────────────

@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})


# ── Routers ────────────────────────────────────────────────
app.include_router(plans.router, prefix="/api/plans", tags=["Plans"])
app.include_router(contractors.router, prefix="/api/contractors", tags=["Contractors"])
app.include_router(leads.router, prefix="/api/leads", tags=["Leads"])
app.include_router(project_types.router, prefix="/api/project-types", tags=["Project Types"])
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin Dashboard"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "D Directory API v1"}
