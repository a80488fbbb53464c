import logging

from flask import Blueprint, jsonify, request

from utils.assessments import EDITABLE_FIELDS, ASSOCIATION_FIELDS, assessment_to_dict
from utils.auth_utils import teacher_required
from utils.errors import ValidationFailed
from utils.gradebook import get_gradebook
from utils.live import emit_publish_state

logger = logging.getLogger(__name__)


assessments_bp = Blueprint("assessments", __name__)


def _to_int(val):
    try:
        return int(val) if val not in (None, "", "None") else None
    except (TypeError, ValueError):
        return None


@assessments_bp.route("/api/assessments", methods=["POST"])
@teacher_required
def api_create_assessment(actor_id):
    data = request.get_json(silent=True) or {}
    csa_id = _to_int(data.get("class_subject_assignment_id"))
    semester_id = _to_int(data.get("semester_id"))
    if not csa_id or not semester_id or not data.get("title") or data.get("max_score") is None:
        raise ValidationFailed(
            "class_subject_assignment_id, semester_id, title and max_score are required"
        )

    assessment = get_gradebook().assessment_manager.create_assessment(
        actor_id,
        csa_id,
        semester_id,
        data.get("title"),
        data.get("max_score"),
        weight=data.get("weight"),
        assessment_date=data.get("assessment_date"),
        assessment_type_id=_to_int(data.get("assessment_type_id")),
    )
    return jsonify({"success": True, "assessment": assessment_to_dict(assessment)}), 201


@assessments_bp.route("/api/assessments/<int:assessment_id>", methods=["PATCH"])
@teacher_required
def api_update_assessment(assessment_id, actor_id):
    data = request.get_json(silent=True) or {}
    fields = {k: v for k, v in data.items() if k in EDITABLE_FIELDS + ASSOCIATION_FIELDS}
    unknown = sorted(set(data) - set(fields))
    if unknown:
        raise ValidationFailed("Unknown fields", fields=unknown)

    assessment = get_gradebook().assessment_manager.update_assessment(
        assessment_id, actor_id, **fields
    )
    return jsonify({"success": True, "assessment": assessment_to_dict(assessment)}), 200


@assessments_bp.route("/api/assessments/<int:assessment_id>/publish", methods=["POST"])
@teacher_required
def api_publish_assessment(assessment_id, actor_id):
    gradebook = get_gradebook()
    result = gradebook.publisher.publish(assessment_id, actor_id)
    if result.changed:
        info = gradebook.assessments.get_assessment(assessment_id)
        emit_publish_state(result.to_dict(), class_id=info.class_id)
    return jsonify({"success": True, "result": result.to_dict()}), 200


@assessments_bp.route("/api/assessments/<int:assessment_id>/unpublish", methods=["POST"])
@teacher_required
def api_unpublish_assessment(assessment_id, actor_id):
    gradebook = get_gradebook()
    result = gradebook.publisher.unpublish(assessment_id, actor_id)
    if result.changed:
        info = gradebook.assessments.get_assessment(assessment_id)
        emit_publish_state(result.to_dict(), class_id=info.class_id)
    return jsonify({"success": True, "result": result.to_dict()}), 200


@assessments_bp.route("/api/assessments/<int:assessment_id>/progress", methods=["GET"])
@teacher_required
def api_assessment_progress(assessment_id, actor_id):
    return jsonify(get_gradebook().projections.assessment_progress(assessment_id)), 200


@assessments_bp.route("/api/assessments/<int:assessment_id>/statistics", methods=["GET"])
@teacher_required
def api_assessment_statistics(assessment_id, actor_id):
    return jsonify(get_gradebook().projections.assessment_statistics(assessment_id)), 200
