"""
BYD Bio API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise DB connection pool (TiDB)
  3. Create tables if not present
  4. Start Kafka producer (notification events)
  5. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from bydbio.config import settings
from bydbio.database import init_db
from bydbio.errors import DomainError
from bydbio.telemetry import setup_tracing, instrument_app
from bydbio.clients.kafka_producer import init_kafka, stop_kafka
from bydbio.routers import appointments, content, feed, notifications, posts, users

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting BYD Bio API (env=%s)", settings.environment)

    await init_db()
    await init_kafka()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await stop_kafka()


app = FastAPI(
    title="BYD Bio API",
    description=(
        "Personal pages for creators: content calendar, diary, home feed, "
        "posts and appointment booking."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(content.router, prefix="/content", tags=["Content"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics, scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
