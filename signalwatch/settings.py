import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Database Configuration (SQL-backed key/value store)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./signalwatch.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")
    store_backend: str = Field(default="memory", alias="STORE_BACKEND")
    store_timeout_seconds: float = Field(default=5.0, alias="STORE_TIMEOUT")

    # Refresh cycle
    cycle_interval_seconds: int = Field(default=60, alias="CYCLE_INTERVAL")

    # Correlation signal suppression
    signal_dedupe_minutes: int = Field(default=30, alias="SIGNAL_DEDUPE_MINUTES")
    signal_history_size: int = Field(default=100, alias="SIGNAL_HISTORY_SIZE")

    # Temporal baselines
    baseline_ttl_days: int = Field(default=90, alias="BASELINE_TTL_DAYS")
    baseline_min_samples: int = Field(default=10, alias="BASELINE_MIN_SAMPLES")
    baseline_max_batch: int = Field(default=20, alias="BASELINE_MAX_BATCH")

    # HTTP surface
    api_enabled: bool = Field(default=False, alias="API_ENABLED")
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")
    api_max_payload_bytes: int = Field(default=51200, alias="API_MAX_PAYLOAD_BYTES")


global_settings = Settings.model_validate(dict(os.environ))
