import logging
import os

from flask import Flask, jsonify
from flask_socketio import SocketIO
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from utils.db_conn import DatabaseConnection
from utils.errors import GradebookError
from utils.gradebook import init_gradebook
from utils.live import initialize_live, register_socketio_handlers

logger = logging.getLogger(__name__)

csrf = CSRFProtect()
socketio = SocketIO(cors_allowed_origins="*")

# Initialize live helpers and register Socket.IO handlers
initialize_live(socketio, logger)
register_socketio_handlers(socketio)


def create_app(config=None, **gradebook_overrides) -> Flask:
    """Build the Flask app; gradebook_overrides swap collaborator implementations."""
    config = config or Config()
    app = Flask(__name__)
    app.config.from_object(config)

    logging.basicConfig(level=getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    database = DatabaseConnection(app)
    csrf.init_app(app)
    socketio.init_app(app)
    if not database.init_database():
        logger.warning("Database not ready at startup; requests will fail until it is reachable")
    init_gradebook(app, **gradebook_overrides)

    from blueprints.assessments_routes import assessments_bp
    from blueprints.grades_routes import grades_bp
    from blueprints.results_routes import results_bp

    app.register_blueprint(assessments_bp)
    app.register_blueprint(grades_bp)
    app.register_blueprint(results_bp)

    @app.errorhandler(GradebookError)
    def _handle_gradebook_error(e: GradebookError):
        db.session.rollback()
        if e.http_status >= 500:
            logger.error(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(CSRFError)
    def _handle_csrf_error(e: CSRFError):
        return jsonify({"error": "csrf_failed", "message": e.description}), 400

    @app.errorhandler(Exception)
    def _handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        logger.exception(f"Unhandled error: {str(e)}")
        return jsonify({"error": "internal_error", "retryable": False}), 500

    @app.route("/api/csrf-token", methods=["GET"])
    def api_csrf_token():
        return jsonify({"csrf_token": generate_csrf()}), 200

    @app.route("/api/health", methods=["GET"])
    def api_health():
        try:
            db.session.execute(db.text("SELECT 1"))
            return jsonify({"status": "ok"}), 200
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return jsonify({"status": "degraded", "error": "database_unavailable"}), 503

    logger.info("Class record grade engine started")
    return app


if __name__ == "__main__":
    app = create_app()
    socketio.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        debug=os.getenv("FLASK_DEBUG", "0") == "1",
    )
