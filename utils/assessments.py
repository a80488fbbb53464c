import logging
from datetime import date
from typing import Optional

from models import Assessment, AssessmentType, ClassSubjectAssignment, Grade, Semester, db
from utils.db_conn import store_call
from utils.errors import NotFound, SemesterLocked, ValidationFailed
from utils.grade_calculation import letter_grade_for, percentage_of

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "assessment_type_id", "weight", "max_score", "assessment_date")
ASSOCIATION_FIELDS = ("class_subject_assignment_id", "semester_id")


def _to_float(value, field_name):
    if isinstance(value, bool):
        raise ValidationFailed(f"{field_name} must be a number", field=field_name)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field_name} must be a number", field=field_name)


def _validate_max_score(value) -> float:
    max_score = _to_float(value, "max_score")
    if max_score <= 0:
        raise ValidationFailed("max_score must be greater than 0", field="max_score")
    return max_score


def _validate_weight(value) -> float:
    weight = _to_float(value, "weight")
    if not 0 <= weight <= 100:
        raise ValidationFailed("weight must be between 0 and 100", field="weight")
    return weight


def _to_date(value) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationFailed("assessment_date must be YYYY-MM-DD", field="assessment_date")


class AssessmentManager:
    """Create and edit assessments; the class/subject pairing freezes once graded."""

    def __init__(self, grading_scale, semester_locks, audit=None):
        self.grading_scale = grading_scale
        self.semester_locks = semester_locks
        self.audit = audit

    def create_assessment(
        self,
        actor_id: int,
        class_subject_assignment_id: int,
        semester_id: int,
        title: str,
        max_score,
        weight=None,
        assessment_date=None,
        assessment_type_id: Optional[int] = None,
    ) -> Assessment:
        if not title or not str(title).strip():
            raise ValidationFailed("title is required", field="title")
        max_score = _validate_max_score(max_score)

        if db.session.get(ClassSubjectAssignment, class_subject_assignment_id) is None:
            raise NotFound(
                "Class subject assignment not found",
                class_subject_assignment_id=class_subject_assignment_id,
            )
        if db.session.get(Semester, semester_id) is None:
            raise NotFound("Semester not found", semester_id=semester_id)
        if self.semester_locks.is_locked(semester_id):
            raise SemesterLocked("Semester is locked", semester_id=semester_id)

        assessment_type = None
        if assessment_type_id is not None:
            assessment_type = db.session.get(AssessmentType, assessment_type_id)
            if assessment_type is None:
                raise NotFound("Assessment type not found", assessment_type_id=assessment_type_id)
        if weight is None:
            weight = assessment_type.weight_default if assessment_type else 0
        weight = _validate_weight(weight)

        with store_call("create_assessment"):
            assessment = Assessment(
                class_subject_assignment_id=class_subject_assignment_id,
                assessment_type_id=assessment_type_id,
                semester_id=semester_id,
                title=str(title).strip(),
                max_score=max_score,
                weight=weight,
                assessment_date=_to_date(assessment_date),
                is_published=False,
                created_by_teacher_id=actor_id,
            )
            db.session.add(assessment)
            db.session.commit()
        logger.info(f"Assessment {assessment.id} '{assessment.title}' created by teacher {actor_id}")
        if self.audit:
            self.audit("CREATE", "ASSESSMENT", assessment.id, {"title": assessment.title}, actor_id=actor_id)
        return assessment

    def update_assessment(self, assessment_id: int, actor_id: int, **fields) -> Assessment:
        assessment = db.session.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFound("Assessment not found", assessment_id=assessment_id)
        if self.semester_locks.is_locked(assessment.semester_id):
            raise SemesterLocked("Semester is locked", semester_id=assessment.semester_id)

        unknown = set(fields) - set(EDITABLE_FIELDS) - set(ASSOCIATION_FIELDS)
        if unknown:
            raise ValidationFailed("Unknown fields", fields=sorted(unknown))
        if not fields:
            raise ValidationFailed("No fields to update")

        grades = (
            db.session.query(Grade)
            .filter(Grade.assessment_id == assessment_id)
            .with_for_update()
            .all()
        )
        moved = [f for f in ASSOCIATION_FIELDS if f in fields and fields[f] != getattr(assessment, f)]
        if moved and grades:
            raise ValidationFailed(
                "Class/subject association cannot change once grades exist", fields=moved
            )

        changes = {}
        if "title" in fields:
            if not fields["title"] or not str(fields["title"]).strip():
                raise ValidationFailed("title is required", field="title")
            changes["title"] = str(fields["title"]).strip()
        if "weight" in fields:
            changes["weight"] = _validate_weight(fields["weight"])
        if "assessment_date" in fields:
            changes["assessment_date"] = _to_date(fields["assessment_date"])
        if "assessment_type_id" in fields:
            type_id = fields["assessment_type_id"]
            if type_id is not None and db.session.get(AssessmentType, type_id) is None:
                raise NotFound("Assessment type not found", assessment_type_id=type_id)
            changes["assessment_type_id"] = type_id
        for field_name in moved:
            changes[field_name] = fields[field_name]
        if "max_score" in fields:
            max_score = _validate_max_score(fields["max_score"])
            highest = max((g.score for g in grades), default=0)
            if highest > max_score:
                raise ValidationFailed(
                    "max_score is below an existing score", field="max_score", highest_score=highest
                )
            changes["max_score"] = max_score

        with store_call("update_assessment"):
            for name, value in changes.items():
                setattr(assessment, name, value)
            if "max_score" in changes:
                # Saves that landed after the first read are picked up here
                db.session.flush()
                grades = (
                    db.session.query(Grade)
                    .filter(Grade.assessment_id == assessment_id)
                    .populate_existing()
                    .with_for_update()
                    .all()
                )
                highest = max((g.score for g in grades), default=0)
                if highest > assessment.max_score:
                    db.session.rollback()
                    raise ValidationFailed(
                        "max_score is below an existing score",
                        field="max_score",
                        highest_score=highest,
                    )
                semester = db.session.get(Semester, assessment.semester_id)
                year_id = semester.academic_year_id if semester else None
                for grade in grades:
                    grade.percentage = percentage_of(grade.score, assessment.max_score)
                    grade.letter_grade = letter_grade_for(
                        self.grading_scale, grade.percentage, academic_year_id=year_id
                    )
            db.session.commit()

        logger.info(
            f"Assessment {assessment_id} updated by teacher {actor_id}: {sorted(changes)}"
        )
        if self.audit:
            self.audit("UPDATE", "ASSESSMENT", assessment_id, {"fields": sorted(changes)}, actor_id=actor_id)
        return assessment


def assessment_to_dict(assessment: Assessment) -> dict:
    return {
        "id": assessment.id,
        "class_subject_assignment_id": assessment.class_subject_assignment_id,
        "assessment_type_id": assessment.assessment_type_id,
        "semester_id": assessment.semester_id,
        "title": assessment.title,
        "max_score": assessment.max_score,
        "weight": assessment.weight,
        "assessment_date": assessment.assessment_date.isoformat()
        if assessment.assessment_date
        else None,
        "is_published": bool(assessment.is_published),
        "published_at": assessment.published_at.isoformat() if assessment.published_at else None,
        "created_by_teacher_id": assessment.created_by_teacher_id,
    }
