"""FastAPI application entry point for the HomePro service lifecycle API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homepro.app.config import get_settings
from homepro.app.error_handlers import install_error_handlers
from homepro.domain.schemas import HealthResponse
from homepro.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    logger.info("Database initialized")
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="HomePro Service Lifecycle API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: allow all origins in debug mode
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from homepro.app.routes.auth import router as auth_router
from homepro.app.routes.homes import router as homes_router, connections_router
from homepro.app.routes.service_requests import router as service_requests_router, pro_router as pro_requests_router
from homepro.app.routes.submissions import router as submissions_router, pending_router, pro_router as pro_records_router

app.include_router(auth_router)
app.include_router(homes_router)
app.include_router(connections_router)
app.include_router(service_requests_router)
app.include_router(pro_requests_router)
app.include_router(submissions_router)
app.include_router(pending_router)
app.include_router(pro_records_router)


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Return service health status."""
    return HealthResponse(status="ok", service="homepro")


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "homepro.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
