import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Load .env variables
load_dotenv()

# --- Path Resolution ---
# Base = repository root
BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime configuration, resolved from environment variables."""
    model_config = ConfigDict(frozen=True)

    # Persistence
    mongo_uri: Optional[str] = None
    raw_db_name: str = "drought_raw"
    analytics_db_name: str = "drought_analytics"
    use_transactions: bool = True

    # Reconstruction
    gap_window_days: int = Field(31, ge=1)
    start_year: int = Field(1991, ge=1900)
    output_dir: Path = BASE_DIR / "OutputData"

    # Collection
    inter_entity_delay_seconds: float = Field(1.0, ge=0)
    http_timeout_seconds: float = Field(30.0, gt=0)
    wamis_base_url: str = "http://www.wamis.go.kr:8080/"
    wamis_api_key: str = ""
    kma_base_url: str = "http://apis.data.go.kr/1360000/"
    kma_api_key: str = ""
    ecowater_base_url: str = "https://api.ekr.or.kr/"
    ecowater_api_key: str = ""
    soil_moisture_base_url: str = "http://localhost:8090/"
    soil_moisture_api_key: str = ""

    # Logging
    log_dir: Optional[str] = "logs"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "mongo_uri": os.getenv("MONGO_URI"),
            "raw_db_name": os.getenv("RAW_DB_NAME", "drought_raw"),
            "analytics_db_name": os.getenv("ANALYTICS_DB_NAME", "drought_analytics"),
            "use_transactions": _env_bool("MONGO_USE_TRANSACTIONS", True),
            "gap_window_days": int(os.getenv("GAP_WINDOW_DAYS", "31")),
            "start_year": int(os.getenv("START_YEAR", "1991")),
            "output_dir": Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "OutputData"))),
            "inter_entity_delay_seconds": float(os.getenv("INTER_ENTITY_DELAY_SECONDS", "1.0")),
            "http_timeout_seconds": float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
            "log_dir": os.getenv("LOG_DIR", "logs") or None,
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
        }
        # Provider endpoints only override the defaults when set
        for field_name in (
            "wamis_base_url", "wamis_api_key",
            "kma_base_url", "kma_api_key",
            "ecowater_base_url", "ecowater_api_key",
            "soil_moisture_base_url", "soil_moisture_api_key",
        ):
            env_value = os.getenv(field_name.upper())
            if env_value is not None:
                values[field_name] = env_value
        return cls(**values)


settings = Settings.from_env()
