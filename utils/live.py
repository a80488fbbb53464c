import logging

from flask_socketio import SocketIO, emit, join_room, leave_room

_socketio: SocketIO | None = None
_logger = logging.getLogger(__name__)


def initialize_live(socketio: SocketIO, logger: logging.Logger | None = None):
    """Provide socketio and optional logger to this module."""
    global _socketio, _logger
    _socketio = socketio
    if logger is not None:
        _logger = logger


def assessment_room(assessment_id: int) -> str:
    return f"assessment-{assessment_id}"


def class_room(class_id: int) -> str:
    return f"class-{class_id}"


def register_socketio_handlers(socketio: SocketIO):
    """Register Socket.IO event handlers. Call this after SocketIO(app) in app.py."""

    @socketio.on("connect")
    def _on_connect():
        emit("connected", {"message": "connected"})

    @socketio.on("subscribe_assessment")
    def _on_subscribe_assessment(data):
        try:
            assessment_id = int((data or {}).get("assessment_id"))
        except (TypeError, ValueError):
            emit("error", {"message": "invalid assessment_id"})
            return
        join_room(assessment_room(assessment_id))
        emit("subscribed", {"assessment_id": assessment_id})

    @socketio.on("unsubscribe_assessment")
    def _on_unsubscribe_assessment(data):
        try:
            assessment_id = int((data or {}).get("assessment_id"))
        except (TypeError, ValueError):
            return
        leave_room(assessment_room(assessment_id))

    @socketio.on("subscribe_class")
    def _on_subscribe_class(data):
        try:
            class_id = int((data or {}).get("class_id"))
        except (TypeError, ValueError):
            emit("error", {"message": "invalid class_id"})
            return
        join_room(class_room(class_id))
        emit("subscribed", {"class_id": class_id})


def emit_grade_saved(grade: dict):
    """Tell other open grading sheets of the assessment that a cell changed."""
    if _socketio is None:
        return
    try:
        _socketio.emit("grade_saved", grade, to=assessment_room(grade["assessment_id"]))
    except Exception as e:
        _logger.error(f"Failed to emit grade_saved for assessment {grade.get('assessment_id')}: {str(e)}")


def emit_publish_state(result: dict, class_id: int | None = None):
    """Broadcast a publish/unpublish transition to the assessment and its class."""
    if _socketio is None:
        return
    try:
        _socketio.emit("publish_state", result, to=assessment_room(result["assessment_id"]))
        if class_id is not None:
            # Class leaderboards are stale once the set of published grades moves
            _socketio.emit("ranking_stale", {"class_id": class_id}, to=class_room(class_id))
    except Exception as e:
        _logger.error(f"Failed to emit publish_state for assessment {result.get('assessment_id')}: {str(e)}")
