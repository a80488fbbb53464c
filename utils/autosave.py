import logging
import math
from dataclasses import replace
from typing import Dict, Optional

from models import db
from utils.db_conn import store_call
from utils.errors import (
    AssessmentLocked,
    ConstraintViolation,
    GradebookError,
    InvalidScore,
    SemesterLocked,
)
from utils.grade_calculation import letter_grade_for, percentage_of
from utils.key_locks import KeyedLocks
from utils.records import GradeRecord

logger = logging.getLogger(__name__)


def coerce_score(raw_score, max_score: float) -> float:
    """Validate 0 <= raw_score <= max_score and return it as a float."""
    if isinstance(raw_score, bool) or raw_score is None:
        raise InvalidScore("Score must be a number", score=raw_score)
    try:
        score = float(raw_score)
    except (TypeError, ValueError):
        raise InvalidScore("Score must be a number", score=raw_score)
    if math.isnan(score) or math.isinf(score):
        raise InvalidScore("Score must be a finite number", score=raw_score)
    if score < 0 or score > max_score:
        raise InvalidScore(
            f"Score must be between 0 and {max_score:g}", score=score, max_score=max_score
        )
    return score


class AutoSaveWriter:
    """Persists one grade cell per edit.

    Edits to the same (assessment, student) serialize on a per-key lock so
    the last call wins and exactly one row exists; other cells proceed in
    parallel.
    """

    def __init__(
        self,
        store,
        assessments,
        grading_scale,
        semester_locks,
        locks: Optional[KeyedLocks] = None,
        default_timeout: Optional[float] = None,
        auto_publish_late_grades: bool = False,
        allow_edit_after_publish: bool = True,
    ):
        self.store = store
        self.assessments = assessments
        self.grading_scale = grading_scale
        self.semester_locks = semester_locks
        self.locks = locks or KeyedLocks("grade cell")
        self.default_timeout = default_timeout
        self.auto_publish_late_grades = auto_publish_late_grades
        self.allow_edit_after_publish = allow_edit_after_publish

    def save_score(
        self,
        assessment_id: int,
        student_id: int,
        raw_score,
        actor_id: int,
        timeout: Optional[float] = None,
    ) -> GradeRecord:
        assessment = self.assessments.get_assessment(assessment_id)
        score = coerce_score(raw_score, assessment.max_score)

        if self.semester_locks.is_locked(assessment.semester_id):
            raise SemesterLocked(
                "Semester is locked; grades can no longer change",
                semester_id=assessment.semester_id,
            )
        if assessment.is_published and not self.allow_edit_after_publish:
            raise AssessmentLocked(
                "Assessment is published; edits are disabled", assessment_id=assessment_id
            )

        percentage = percentage_of(score, assessment.max_score)
        letter_grade = letter_grade_for(
            self.grading_scale, percentage, academic_year_id=assessment.academic_year_id
        )

        timeout = self.default_timeout if timeout is None else timeout
        with self.locks.hold((assessment_id, student_id), timeout=timeout):
            try:
                return self._write(assessment, student_id, score, percentage, letter_grade, actor_id)
            except ConstraintViolation:
                logger.warning(
                    f"Concurrent insert on grade ({assessment_id}, {student_id}); retrying as update"
                )
                return self._write(assessment, student_id, score, percentage, letter_grade, actor_id)

    def _write(self, assessment, student_id, score, percentage, letter_grade, actor_id) -> GradeRecord:
        with store_call("save_score"):
            existing = self.store.find(assessment.id, student_id)
            publish_now = self.auto_publish_late_grades and assessment.is_published
            record = GradeRecord(
                student_id=student_id,
                assessment_id=assessment.id,
                score=score,
                percentage=percentage,
                letter_grade=letter_grade,
                is_published=bool(existing and existing.is_published) or publish_now,
                teacher_id=actor_id,
                class_id=assessment.class_id,
                subject_id=assessment.subject_id,
                academic_year_id=assessment.academic_year_id,
                semester_id=assessment.semester_id,
            )
            saved = self.store.upsert(record)
            current_max = self.assessments.current_max_score(assessment.id)
            if current_max != assessment.max_score:
                # max_score changed after this save read it
                if score > current_max:
                    db.session.rollback()
                    raise InvalidScore(
                        f"Score must be between 0 and {current_max:g}",
                        score=score,
                        max_score=current_max,
                    )
                percentage = percentage_of(score, current_max)
                record = replace(
                    record,
                    percentage=percentage,
                    letter_grade=letter_grade_for(
                        self.grading_scale, percentage, academic_year_id=assessment.academic_year_id
                    ),
                )
                saved = self.store.upsert(record)
            db.session.commit()
        logger.info(
            f"Grade {'updated' if existing else 'created'} for student {student_id} "
            f"on assessment {assessment.id}: {score:g} ({percentage}%) by teacher {actor_id}"
        )
        return saved

    def save_scores(self, assessment_id: int, scores: Dict[int, object], actor_id: int) -> dict:
        """Save a whole grading sheet; each cell succeeds or fails on its own."""
        self.assessments.get_assessment(assessment_id)
        saved = []
        errors = {}
        for student_id, raw_score in scores.items():
            try:
                saved.append(self.save_score(assessment_id, int(student_id), raw_score, actor_id))
            except GradebookError as e:
                errors[int(student_id)] = e.to_dict()
        if errors:
            logger.warning(
                f"Bulk save on assessment {assessment_id}: {len(errors)} of {len(scores)} cells failed"
            )
        return {"saved": saved, "errors": errors}
