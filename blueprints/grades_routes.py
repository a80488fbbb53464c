import logging

from flask import Blueprint, jsonify, request

from utils.auth_utils import teacher_required
from utils.errors import ValidationFailed
from utils.gradebook import get_gradebook
from utils.live import emit_grade_saved

logger = logging.getLogger(__name__)


grades_bp = Blueprint("grades", __name__)


@grades_bp.route("/api/assessments/<int:assessment_id>/grades/<int:student_id>", methods=["PUT"])
@teacher_required
def api_save_score(assessment_id, student_id, actor_id):
    """Auto-save one cell of the grading sheet. Body: {"score": number}."""
    data = request.get_json(silent=True) or {}
    if "score" not in data:
        raise ValidationFailed("score is required", field="score")

    grade = get_gradebook().writer.save_score(assessment_id, student_id, data["score"], actor_id)
    payload = grade.to_dict()
    emit_grade_saved(payload)
    return jsonify({"success": True, "grade": payload}), 200


@grades_bp.route("/api/assessments/<int:assessment_id>/grades", methods=["PUT"])
@teacher_required
def api_save_scores(assessment_id, actor_id):
    """Save a whole sheet. Body: {"scores": {"<student_id>": number, ...}}."""
    data = request.get_json(silent=True) or {}
    scores = data.get("scores")
    if not isinstance(scores, dict) or not scores:
        raise ValidationFailed("scores must be a non-empty object", field="scores")
    try:
        scores = {int(k): v for k, v in scores.items()}
    except (TypeError, ValueError):
        raise ValidationFailed("scores keys must be student ids", field="scores")

    outcome = get_gradebook().writer.save_scores(assessment_id, scores, actor_id)
    saved = [g.to_dict() for g in outcome["saved"]]
    for grade in saved:
        emit_grade_saved(grade)
    status = 200 if not outcome["errors"] else 207
    return (
        jsonify(
            {
                "success": not outcome["errors"],
                "grades": saved,
                "errors": {str(k): v for k, v in outcome["errors"].items()},
            }
        ),
        status,
    )


@grades_bp.route("/api/assessments/<int:assessment_id>/grades", methods=["GET"])
@teacher_required
def api_list_grades(assessment_id, actor_id):
    gradebook = get_gradebook()
    gradebook.assessments.get_assessment(assessment_id)
    grades = gradebook.store.list_for_assessment(assessment_id)
    return jsonify({"grades": [g.to_dict() for g in grades]}), 200
