import logging
from functools import wraps

from flask import jsonify, session

logger = logging.getLogger(__name__)


def login_required(f):
    """Any signed-in user; read views are filtered by the data store's row-level rules."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"error": "not_logged_in"}), 401
        return f(*args, **kwargs)

    return decorated_function


def teacher_required(f):
    """Resolve the acting teacher from the session and pass it as actor_id.

    This is the only place the session is read; everything below the route
    receives the teacher id explicitly.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"error": "not_logged_in"}), 401
        if session.get("role") != "teacher":
            return jsonify({"error": "forbidden"}), 403
        teacher_id = session.get("teacher_id")
        if not teacher_id:
            logger.warning(f"Session for user {session.get('user_id')} has no teacher_id")
            return jsonify({"error": "teacher_not_found"}), 404
        return f(*args, actor_id=int(teacher_id), **kwargs)

    return decorated_function
