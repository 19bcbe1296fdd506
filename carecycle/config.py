import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg://localhost:5432/carecycle")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Redis is used for invalidation fan-out and the arq worker
REDIS_URL = os.getenv("REDIS_URL")

# Informational only: all due-date math runs on UTC calendar days
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Auto-hold job: schedules are paused in batches of this size
AUTO_HOLD_BATCH_SIZE = int(os.getenv("AUTO_HOLD_BATCH_SIZE", "100"))

# Nurse visibility by care-type text tag (pre-department scheme)
# Department id matching is canonical; enable only while migrating old tenants
LEGACY_CARE_TYPE_MATCHING = os.getenv("LEGACY_CARE_TYPE_MATCHING", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
