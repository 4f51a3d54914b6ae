"""
Runtime configuration read from the environment.
"""

import os
from pathlib import Path

DATA_DIR = Path(os.getenv("DRONELOG_DATA_DIR", "./data"))
DB_PATH = Path(os.getenv("DRONELOG_DB_PATH", str(DATA_DIR / "flights.db")))

DEFAULT_MAX_POINTS = int(os.getenv("DRONELOG_DEFAULT_MAX_POINTS", "5000"))
MAX_POINTS_LIMIT = int(os.getenv("DRONELOG_MAX_POINTS_LIMIT", "100000"))
MAX_UPLOAD_BYTES = int(float(os.getenv("DRONELOG_MAX_UPLOAD_MB", "200")) * 1024 * 1024)

LOG_LEVEL = os.getenv("DRONELOG_LOG_LEVEL", "INFO").upper()

# Timezone applied to wall-clock strings that carry no offset
DEFAULT_TIMEZONE = os.getenv("DRONELOG_TIMEZONE", "UTC")
