"""Configuration management from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

from samharvest.parse.normalize import parse_iso_date

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
STATE_DB = Path(os.getenv("SAMHARVEST_DB", str(DATA_DIR / "samharvest.db")))
RUNS_FILE = DATA_DIR / "runs.jsonl"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)


class Config:
    """Application configuration."""

    # SAM.gov
    BASE_URL: str = os.getenv("BASE_URL", "https://api.sam.gov/opportunities/v2/search")
    SAMGOV_API_KEY: str | None = os.getenv("SAMGOV_API_KEY")
    TIMEOUT: int = int(os.getenv("TIMEOUT", "30"))
    RATE_PER_SECOND: float = float(os.getenv("RATE_PER_SECOND", "1.0"))
    PAGE_SIZE: int = int(os.getenv("PAGE_SIZE", "1000"))
    MAX_RECORDS_PER_WINDOW: int = int(os.getenv("MAX_RECORDS_PER_WINDOW", "10000"))

    # Harvesting
    MAX_API_CALLS: int = int(os.getenv("MAX_API_CALLS", "10"))
    INCREMENTAL_DAYS: int = int(os.getenv("INCREMENTAL_DAYS", "3"))
    BACKFILL_WINDOW_DAYS: int = int(os.getenv("BACKFILL_WINDOW_DAYS", "90"))
    BACKFILL_FLOOR: str = os.getenv("BACKFILL_FLOOR", "2018-01-01")
    MAX_CATCHUP_DAYS: int = int(os.getenv("MAX_CATCHUP_DAYS", "30"))
    LOCK_TTL_MINUTES: int = int(os.getenv("LOCK_TTL_MINUTES", "60"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Read API
    PORT: int = int(os.getenv("PORT", "3001"))

    @classmethod
    def validate(cls, require_api_key: bool = True) -> None:
        """Validate required configuration."""
        errors = []
        if require_api_key and not cls.SAMGOV_API_KEY:
            errors.append("SAMGOV_API_KEY is required")
        if not 1 <= cls.PAGE_SIZE <= 1000:
            errors.append("PAGE_SIZE must be between 1 and 1000")
        if cls.MAX_API_CALLS < 0:
            errors.append("MAX_API_CALLS must not be negative")
        if cls.INCREMENTAL_DAYS < 0:
            errors.append("INCREMENTAL_DAYS must not be negative")
        if cls.BACKFILL_WINDOW_DAYS < 1:
            errors.append("BACKFILL_WINDOW_DAYS must be at least 1")
        if cls.MAX_CATCHUP_DAYS < 1:
            errors.append("MAX_CATCHUP_DAYS must be at least 1")
        if cls.LOCK_TTL_MINUTES < 1:
            errors.append("LOCK_TTL_MINUTES must be at least 1")
        if cls.BACKFILL_FLOOR:
            try:
                parse_iso_date(cls.BACKFILL_FLOOR)
            except ValueError:
                errors.append(f"BACKFILL_FLOOR is not a date: {cls.BACKFILL_FLOOR!r}")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


config = Config()
