import logging
from functools import wraps

from flask import jsonify
from werkzeug.exceptions import HTTPException

from .db import StorageError

logger = logging.getLogger(__name__)


def reports_failure(message: str):
    """
    Turn a StorageError raised by the wrapped view into a generic 500.
    The detail only goes to the server log.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except StorageError:
                logger.exception("%s", message)
                return jsonify({"error": message}), 500
        return wrapper
    return decorator


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def http_error(exc):
        # 400 / 401 / 404 ... as {"error": ...}
        return jsonify({"error": exc.description}), exc.code
