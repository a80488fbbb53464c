import logging

from flask import Blueprint, jsonify, request

from utils.auth_utils import login_required
from utils.errors import ValidationFailed
from utils.gradebook import get_gradebook

logger = logging.getLogger(__name__)


results_bp = Blueprint("results", __name__)


def _optional_int_arg(name):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer", field=name)


@results_bp.route("/api/students/<int:student_id>/subjects/<int:subject_id>/average", methods=["GET"])
@login_required
def api_subject_average(student_id, subject_id):
    semester_id = _optional_int_arg("semester_id")
    result = get_gradebook().aggregation.subject_average(student_id, subject_id, semester_id)
    payload = result.to_dict()
    payload.update({"student_id": student_id, "subject_id": subject_id, "semester_id": semester_id})
    return jsonify(payload), 200


@results_bp.route("/api/students/<int:student_id>/transcript", methods=["GET"])
@login_required
def api_student_transcript(student_id):
    semester_id = _optional_int_arg("semester_id")
    return jsonify(get_gradebook().projections.student_transcript(student_id, semester_id)), 200


@results_bp.route("/api/classes/<int:class_id>/ranking", methods=["GET"])
@login_required
def api_class_ranking(class_id):
    semester_id = _optional_int_arg("semester_id")
    limit = _optional_int_arg("limit")
    if semester_id is None:
        raise ValidationFailed("semester_id is required", field="semester_id")
    board = get_gradebook().projections.class_leaderboard(class_id, semester_id, limit=limit)
    return jsonify(board), 200
