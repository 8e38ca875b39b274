import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldroutes.db")

# Connection pool (ignored for SQLite)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Firebase Configuration (token verification only, identity lives upstream)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Scheduling
# How many days ahead the nightly job materializes recurring occurrences
SCHEDULING_HORIZON_DAYS = int(os.getenv("SCHEDULING_HORIZON_DAYS", "14"))
# Stop type used when neither the contact nor the one-time visit carries one
DEFAULT_STOP_TYPE = os.getenv("DEFAULT_STOP_TYPE", "visit")

# Comma separated list of allowed origins for the field app / dashboard
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
