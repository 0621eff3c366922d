# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, jsonify

from .extensions import db
from .validation import BoutiqueError


def api_errors(action: str, fallback: str = "Internal server error"):
    """
    Map domain errors to JSON responses for a route.

    BoutiqueError subclasses carry their own status code and details.
    Anything else is logged with a traceback and reported as a generic 500,
    so raw store errors never reach the client.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except BoutiqueError as e:
                db.session.rollback()
                return jsonify(e.to_dict()), e.status_code
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": fallback}), 500
        return decorated_function
    return decorator
