# finance_tracker/config.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./finance_tracker.db")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Insurance is not tracked per user yet; summaries use this flat figure.
DEFAULT_INSURANCE = float(os.getenv("DEFAULT_INSURANCE", "2000"))
DEFAULT_PROJECTION_YEARS = int(os.getenv("DEFAULT_PROJECTION_YEARS", "10"))

# -----------------------------
# Budgets
# -----------------------------
TOTAL_CATEGORY = "total"

DEFAULT_BUDGETS = {
    TOTAL_CATEGORY: 30000,
    "food": 8000,
    "transportation": 3000,
    "entertainment": 2000,
    "utilities": 2000,
    "shopping": 5000,
    "healthcare": 2000,
    "miscellaneous": 8000,
}


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
