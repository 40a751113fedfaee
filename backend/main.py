"""Piktor Backend: FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from backend import config  # noqa: E402
from backend.middleware.rate_limit import RateLimitMiddleware  # noqa: E402
from backend.routes import account, billing, edits, generation, wizard  # noqa: E402

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    from backend.database import SessionLocal, init_db
    from backend.services.container import Services
    init_db()
    app.state.services = Services(SessionLocal)
    await app.state.services.wizard_store.cleanup_expired()
    logger.info("Piktor API ready (max in-flight generations: %d)", config.GENERATION_MAX_IN_FLIGHT)
    yield


app = FastAPI(
    title="Piktor API",
    description="AI product visuals for furniture brands",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow frontend origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL or config.APP_URL],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting: 60 req/min general, 10 req/min for AI routes, 5 req/min for billing/account
app.add_middleware(RateLimitMiddleware, requests_per_minute=60, ai_requests_per_minute=10, sensitive_requests_per_minute=5)

# Register route modules
app.include_router(generation.router, prefix="/api", tags=["Generation"])
app.include_router(edits.router, prefix="/api", tags=["Edits"])
app.include_router(wizard.router, prefix="/api", tags=["Wizard"])
app.include_router(account.router, prefix="/api", tags=["Account"])
app.include_router(billing.router, prefix="/api", tags=["Billing"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "piktor-backend"}
