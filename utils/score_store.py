"""Keyed storage for score cells: (assessment_id, student_id) -> grade row.

The unique constraint on grades(student_id, assessment_id) is the source of
truth; upsert pushes the race to the database with a native
INSERT .. ON CONFLICT / ON DUPLICATE KEY statement where the dialect has one.
Nothing here commits; callers own the transaction.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite

from models import Grade, db
from utils.db_conn import dialect_name
from utils.errors import NotFound
from utils.records import GradeRecord

logger = logging.getLogger(__name__)

# Columns an upsert rewrites on an existing cell
_UPDATABLE = (
    "score",
    "percentage",
    "letter_grade",
    "teacher_id",
    "class_id",
    "subject_id",
    "academic_year_id",
    "semester_id",
)


class ScoreCellStore:
    def _select(self, assessment_id: int, student_id: int):
        return (
            select(Grade)
            .where(Grade.assessment_id == assessment_id, Grade.student_id == student_id)
            .execution_options(populate_existing=True)
        )

    def find(self, assessment_id: int, student_id: int) -> Optional[GradeRecord]:
        grade = db.session.execute(self._select(assessment_id, student_id)).scalar_one_or_none()
        return GradeRecord.from_model(grade) if grade is not None else None

    def get(self, assessment_id: int, student_id: int) -> GradeRecord:
        record = self.find(assessment_id, student_id)
        if record is None:
            raise NotFound(
                "Grade not found", assessment_id=assessment_id, student_id=student_id
            )
        return record

    def upsert(self, record: GradeRecord) -> GradeRecord:
        """Insert or update the cell for (record.assessment_id, record.student_id).

        An existing is_published flag is never cleared by an upsert.
        """
        values = {
            "student_id": record.student_id,
            "assessment_id": record.assessment_id,
            "score": record.score,
            "percentage": record.percentage,
            "letter_grade": record.letter_grade,
            "is_published": record.is_published,
            "teacher_id": record.teacher_id,
            "class_id": record.class_id,
            "subject_id": record.subject_id,
            "academic_year_id": record.academic_year_id,
            "semester_id": record.semester_id,
        }
        dialect = dialect_name()
        if dialect in ("sqlite", "postgresql"):
            insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
            stmt = insert(Grade).values(**values)
            changes = {name: stmt.excluded[name] for name in _UPDATABLE}
            changes["is_published"] = or_(Grade.is_published, stmt.excluded.is_published)
            changes["updated_at"] = db.func.current_timestamp()
            stmt = stmt.on_conflict_do_update(
                index_elements=[Grade.student_id, Grade.assessment_id], set_=changes
            )
            db.session.execute(stmt)
        elif dialect == "mysql":
            stmt = mysql.insert(Grade).values(**values)
            changes = {name: stmt.inserted[name] for name in _UPDATABLE}
            changes["is_published"] = or_(Grade.is_published, stmt.inserted.is_published)
            changes["updated_at"] = db.func.current_timestamp()
            db.session.execute(stmt.on_duplicate_key_update(**changes))
        else:
            self._select_then_write(values)
        return self.get(record.assessment_id, record.student_id)

    def _select_then_write(self, values: dict):
        # A concurrent insert of the same key surfaces as IntegrityError at flush
        grade = db.session.execute(
            self._select(values["assessment_id"], values["student_id"])
        ).scalar_one_or_none()
        if grade is None:
            db.session.add(Grade(**values))
        else:
            for name in _UPDATABLE:
                setattr(grade, name, values[name])
            grade.is_published = grade.is_published or values["is_published"]
        db.session.flush()

    def list_for_assessment(self, assessment_id: int) -> List[GradeRecord]:
        rows = db.session.execute(
            select(Grade).where(Grade.assessment_id == assessment_id).order_by(Grade.student_id)
        ).scalars()
        return [GradeRecord.from_model(g) for g in rows]

    def set_published_for_assessment(self, assessment_id: int, is_published: bool) -> int:
        result = db.session.execute(
            update(Grade)
            .where(Grade.assessment_id == assessment_id)
            .values(is_published=is_published, updated_at=db.func.current_timestamp())
        )
        return result.rowcount or 0

    def publish_hidden_grades(self, assessment_id: int) -> List[int]:
        """Publish rows saved after the assessment went live; returns their student ids."""
        student_ids = list(
            db.session.execute(
                select(Grade.student_id)
                .where(Grade.assessment_id == assessment_id, Grade.is_published.is_(False))
                .order_by(Grade.student_id)
                .with_for_update()
            ).scalars()
        )
        if student_ids:
            db.session.execute(
                update(Grade)
                .where(Grade.assessment_id == assessment_id, Grade.student_id.in_(student_ids))
                .values(is_published=True, updated_at=db.func.current_timestamp())
            )
        return student_ids

    def published_grades_for(
        self, assessment_ids: Iterable[int], student_ids: Optional[Iterable[int]] = None
    ) -> Dict[tuple, GradeRecord]:
        """Published cells keyed by (assessment_id, student_id)."""
        assessment_ids = list(assessment_ids)
        if not assessment_ids:
            return {}
        query = select(Grade).where(
            Grade.assessment_id.in_(assessment_ids), Grade.is_published.is_(True)
        )
        if student_ids is not None:
            query = query.where(Grade.student_id.in_(list(student_ids)))
        return {
            (g.assessment_id, g.student_id): GradeRecord.from_model(g)
            for g in db.session.execute(query).scalars()
        }
