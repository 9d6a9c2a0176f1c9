import os
from pathlib import Path

# Configuration
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./analytics.db")

LOG_LEVEL = os.environ.get("SURFACE_LOG_LEVEL", "INFO").upper()
LOG_JSON = os.environ.get("SURFACE_LOG_JSON", "0").lower() in ("1", "true", "yes")

# Served tag
TAG_CACHE_SECONDS = int(os.environ.get("SURFACE_TAG_CACHE_SECONDS", "3600"))
AGENT_BUNDLE_PATH = Path(
    os.environ.get(
        "SURFACE_AGENT_BUNDLE",
        os.path.join(os.path.dirname(__file__), "static", "surface_analytics.js"),
    )
)
API_KEY_PLACEHOLDER = "const SURFACE_API_KEY = null;"

# Ingest limits (mirrors the agent's hard queue cap)
MAX_BATCH_EVENTS = 100

# Query endpoint paging
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100
