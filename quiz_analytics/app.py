import logging

from flask import Flask, jsonify, request

from . import admin, config, tracking
from .db import close_db
from .errors import register_error_handlers
from .timekeys import format_instant, now_utc

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# CORS
# -----------------------------------------------------------------------------
def pick_cors_origin(request_origin: str | None, allowed_origins) -> str | None:
    """
    Return the origin to echo back if it is on the allowlist ("*" = any).
    """
    if not request_origin:
        return None
    if "*" in allowed_origins:
        return "*"
    for allowed in allowed_origins:
        if request_origin == allowed:
            return allowed
    return None


def add_cors_headers(resp):
    """
    Attach CORS headers for allowed cross-origin callers (the quiz pages post
    tracking events from their own domain).
    """
    origin = pick_cors_origin(request.headers.get("Origin"), config.CORS_ALLOW_ORIGINS)

    if origin:
        req_headers = request.headers.get("Access-Control-Request-Headers", "Content-Type, x-api-key")

        resp.headers["Access-Control-Allow-Origin"] = origin
        if origin != "*":
            resp.headers["Vary"] = "Origin"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = req_headers
        resp.headers["Access-Control-Max-Age"] = "600"
    return resp


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------
def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_mapping(
        DB_PATH=config.DB_PATH,
        ADMIN_API_KEY=config.ADMIN_API_KEY,
    )
    if overrides:
        app.config.update(overrides)
    app.json.ensure_ascii = False

    app.register_blueprint(tracking.bp)
    app.register_blueprint(admin.bp)
    register_error_handlers(app)

    app.teardown_appcontext(close_db)
    app.after_request(add_cors_headers)

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": format_instant(now_utc()),
            "database": "sqlite",
        })

    return app


app = create_app()


if __name__ == "__main__":
    # Dev mode, container uses gunicorn
    logger.info("analytics server on http://localhost:%s (db: %s)", config.PORT, config.DB_PATH)
    app.run(host="0.0.0.0", port=config.PORT)
