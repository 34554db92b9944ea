import os

# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------
DB_PATH = os.environ.get("ANALYTICS_DB", "analytics.sqlite3")
ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY", "change-me-admin-key")
PORT = int(os.environ.get("PORT", "3001"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# CORS allowlist ("*" lets any origin call the tracking endpoints)
CORS_ALLOW_ORIGINS = os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",")
CORS_ALLOW_ORIGINS = [o.strip() for o in CORS_ALLOW_ORIGINS if o.strip()]

# Read-path row caps. Older rows beyond the cap are silently left out.
DASHBOARD_ROW_LIMIT = 10_000
ANALYTICS_ROW_LIMIT = 50_000

# First day considered by exports when no startDate is given
EXPORT_EPOCH = "2020-01-01"
