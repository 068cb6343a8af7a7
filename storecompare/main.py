# storecompare/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storecompare.api.deps import get_notification_emitter
from storecompare.api.v1 import compare, listings, notifications, search
from storecompare.config import settings
from storecompare.db.redis_client import ping_redis
from storecompare.db.supabase_client import SupabaseClientManager

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    emitter = get_notification_emitter()
    emitter.start()
    yield
    emitter.stop()


app = FastAPI(
    title="StoreCompare API",
    description="Multi-store basket comparison, price history and trending searches.",
    version=API_VERSION,
    lifespan=lifespan,
)

# --- CORS (Cross-Origin Resource Sharing) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- API Routers ---
app.include_router(compare.router, prefix="/api/v1", tags=["Comparison"])
app.include_router(listings.router, prefix="/api/v1", tags=["Listings"])
app.include_router(search.router, prefix="/api/v1", tags=["Trending"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["Notifications"])


@app.get("/health")
async def health_check():
    """
    Health check endpoint that reports the state of every collaborator.
    """
    emitter = get_notification_emitter()
    health = {
        "status": "healthy",
        "api_version": API_VERSION,
        "components": {
            "supabase": {"status": "ok" if SupabaseClientManager.get_instance().enabled else "error"},
            "redis": {"status": "ok" if ping_redis() else "disabled"},
            "notification_worker": {
                "status": "ok" if emitter.running else "stopped",
                "pending": emitter.pending(),
                "delivered": emitter.delivered,
                "failed": emitter.failed,
            },
            "settings": {
                "status": "ok",
                "config": {
                    "supabase_url": bool(settings.SUPABASE_URL),
                    "supabase_key": bool(settings.SUPABASE_KEY),
                    "supabase_jwt_secret": bool(settings.SUPABASE_JWT_SECRET),
                    "gcp_project": bool(settings.GCP_PROJECT_ID),
                    "redis_url": bool(settings.REDIS_URL),
                    "data_source": settings.DATA_SOURCE,
                },
            },
        },
    }

    if health["components"]["supabase"]["status"] != "ok" or not emitter.running:
        health["status"] = "degraded"
    if settings.DATA_SOURCE == "bigquery" and not (settings.GCP_PROJECT_ID and settings.BIGQUERY_DATASET_ID):
        health["components"]["bigquery"] = {"status": "error", "error": "GCP project or dataset not configured"}
        health["status"] = "degraded"

    return health


@app.get("/", tags=["Health Check"])
def read_root():
    """A public health check endpoint to confirm the API is running."""
    return {"status": "ok"}
