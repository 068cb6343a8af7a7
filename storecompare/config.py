from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Loads environment variables from the .env file.
    Collaborator credentials default to empty so the engine can start (and be
    tested) without them; the clients report themselves as disabled instead.
    """
    # Supabase settings
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_JWT_SECRET: str = ""

    # GCP settings
    GCP_PROJECT_ID: str = ""
    BIGQUERY_DATASET_ID: str = ""
    DATA_SOURCE: str = "supabase"  # where comparisons read listings: supabase | bigquery

    # Redis backs the trending counters; in-process counters are used without it
    REDIS_URL: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Comparison
    MIN_COMPARE_STORES: int = 2
    MAX_COMPARE_STORES: int = 3
    MAX_ALLOCATION_STORES: int = Field(2, ge=2, le=3)

    # Collaborator calls
    STORE_TIMEOUT_SECONDS: float = 15
    STORE_THREAD_POOL_SIZE: int = 10

    # Notifications
    NOTIFICATION_QUEUE_SIZE: int = 1000

    # Listing defaults
    PRICE_HISTORY_DEFAULT_LIMIT: int = 30
    TRENDING_DEFAULT_LIMIT: int = 10

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single, importable instance of the settings
settings = Settings()
