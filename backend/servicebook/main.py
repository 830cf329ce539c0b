import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from servicebook.logging_config import setup_logging
from servicebook.models import ReadinessStatus
from servicebook.routers import bookings
from servicebook.services.booking_service import BookingService
from servicebook.services.entity_store import Storage

logger = logging.getLogger(__name__)

default_db = str(Path(__file__).resolve().parents[1] / "data" / "services.sqlite3")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), logfile=os.getenv("LOG_FILE") or None)
    storage = Storage(db_path=os.getenv("SERVICES_DB_PATH", default_db))
    app.state.storage = storage
    app.state.booking_service = BookingService(storage)
    logger.info("Service booking API started")
    yield
    logger.info("Service booking API stopped")


app = FastAPI(title="Service Booking API", version="0.1.0", lifespan=lifespan)


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


cors_origins = _parse_csv_env("CORS_ORIGINS", "*")
allow_any_origin = len(cors_origins) == 1 and cors_origins[0] == "*"

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Browsers reject wildcard CORS with credentials enabled.
    allow_credentials=not allow_any_origin,
    allow_methods=["*"],
    allow_headers=["*"],
)

trusted_hosts = _parse_csv_env("TRUSTED_HOSTS", "*")
if not (len(trusted_hosts) == 1 and trusted_hosts[0] == "*"):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

app.include_router(bookings.router, prefix="/services")
app.include_router(bookings.router, prefix="/listings")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/ready", response_model=ReadinessStatus)
def ready(request: Request):
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        return ReadinessStatus(status="starting")
    return ReadinessStatus(
        status="ready",
        db_path=storage.db_path,
        providers=len(storage.providers),
        bookings=len(storage.bookings),
        clients=len(storage.clients),
        next_id=storage.ids.current(),
    )
