"""Weighted subject averages and class ranking.

Read-only: nothing here takes a lock or writes. Stored grade percentages are
already rounded integers and are weighted as-is; averages stay floats until
they are presented.
"""

import logging
from typing import Dict, Iterator, List, Optional

from models import Assessment, ClassSubjectAssignment, db
from utils.grade_calculation import assign_ranks, weighted_average
from utils.records import ClassRankRow, SubjectAverage, SubjectResult

logger = logging.getLogger(__name__)


class ClassRanking:
    """Ranked rows for one class and semester.

    Iterating runs the computation from a fresh read each time, so the same
    object can be walked again after grades change.
    """

    def __init__(self, engine: "AggregationEngine", class_id: int, semester_id: Optional[int]):
        self.engine = engine
        self.class_id = class_id
        self.semester_id = semester_id

    def __iter__(self) -> Iterator[ClassRankRow]:
        return self.engine._ranked_rows(self.class_id, self.semester_id)

    def subjects(self):
        return self.engine.subject_assignments.get_class_subjects(
            self.class_id, self.semester_id, published_only=True
        )


class AggregationEngine:
    def __init__(self, store, roster, subject_assignments, rank_policy: str = "competition"):
        self.store = store
        self.roster = roster
        self.subject_assignments = subject_assignments
        self.rank_policy = rank_policy

    def _published_assessment_weights(self, assessment_ids) -> Dict[int, float]:
        if not assessment_ids:
            return {}
        rows = (
            db.session.query(Assessment.id, Assessment.weight)
            .filter(Assessment.id.in_(list(assessment_ids)), Assessment.is_published.is_(True))
            .all()
        )
        return {r.id: float(r.weight or 0) for r in rows}

    def subject_average(
        self, student_id: int, subject_id: int, semester_id: Optional[int] = None
    ) -> SubjectAverage:
        class_ids = self.roster.get_student_class_ids(student_id)
        if not class_ids:
            return SubjectAverage(average=0.0, assessments_considered=0)

        query = (
            db.session.query(Assessment.id, Assessment.weight)
            .join(
                ClassSubjectAssignment,
                Assessment.class_subject_assignment_id == ClassSubjectAssignment.id,
            )
            .filter(
                ClassSubjectAssignment.class_id.in_(class_ids),
                ClassSubjectAssignment.subject_id == subject_id,
                Assessment.is_published.is_(True),
            )
        )
        if semester_id is not None:
            query = query.filter(Assessment.semester_id == semester_id)
        weights = {r.id: float(r.weight or 0) for r in query.all()}

        grades = self.store.published_grades_for(weights, [student_id])
        average, considered = weighted_average(
            (grades[(aid, student_id)].percentage, weight)
            for aid, weight in weights.items()
            if (aid, student_id) in grades
        )
        return SubjectAverage(average=average, assessments_considered=considered)

    def class_ranking(self, class_id: int, semester_id: Optional[int]) -> ClassRanking:
        return ClassRanking(self, class_id, semester_id)

    def _ranked_rows(self, class_id: int, semester_id: Optional[int]) -> Iterator[ClassRankRow]:
        subjects = self.subject_assignments.get_class_subjects(
            class_id, semester_id, published_only=True
        )
        students = self.roster.get_enrolled_students(class_id, semester_id)
        if not students:
            return

        all_ids = [aid for subject in subjects for aid in subject.assessment_ids]
        weights = self._published_assessment_weights(all_ids)
        grades = self.store.published_grades_for(weights, [s.id for s in students])

        rows: List[ClassRankRow] = []
        for student in students:
            results = []
            for subject in subjects:
                average, considered = weighted_average(
                    (grades[(aid, student.id)].percentage, weights[aid])
                    for aid in subject.assessment_ids
                    if aid in weights and (aid, student.id) in grades
                )
                results.append(
                    SubjectResult(
                        subject_id=subject.subject_id,
                        subject_name=subject.subject_name,
                        subject_code=subject.subject_code,
                        average=average,
                        assessments_considered=considered,
                    )
                )
            with_data = [r for r in results if r.has_data]
            total = sum(r.average for r in with_data)
            rows.append(
                ClassRankRow(
                    student_id=student.id,
                    student_id_code=student.student_id_code,
                    full_name=student.full_name,
                    subjects=results,
                    total=total,
                    average=total / len(with_data) if with_data else 0.0,
                    subjects_with_data=len(with_data),
                )
            )

        logger.debug(
            f"Ranking class {class_id} semester {semester_id}: {len(rows)} students, {len(subjects)} subjects"
        )
        yield from assign_ranks(rows, self.rank_policy)
