"""Read-only lookups the grade engine needs from the rest of the school records.

Each provider is a small class so tests and other deployments can swap in
their own implementation with the same method names.
"""

import logging
from typing import List, Optional

from models import (
    AcademicYear,
    Assessment,
    ClassSubjectAssignment,
    Enrollment,
    Semester,
    Student,
    Subject,
    db,
)
from utils.errors import NotFound
from utils.records import AssessmentInfo, ClassSubject

logger = logging.getLogger(__name__)


class AssessmentDirectory:
    """get_assessment(id) -> AssessmentInfo with the class-subject pairing resolved."""

    def get_assessment(self, assessment_id: int) -> AssessmentInfo:
        row = (
            db.session.query(Assessment, ClassSubjectAssignment, Subject, Semester)
            .join(
                ClassSubjectAssignment,
                Assessment.class_subject_assignment_id == ClassSubjectAssignment.id,
            )
            .join(Subject, ClassSubjectAssignment.subject_id == Subject.id)
            .join(Semester, Assessment.semester_id == Semester.id)
            .filter(Assessment.id == assessment_id)
            .first()
        )
        if row is None:
            raise NotFound("Assessment not found", assessment_id=assessment_id)
        assessment, assignment, subject, semester = row
        return AssessmentInfo(
            id=assessment.id,
            title=assessment.title,
            max_score=float(assessment.max_score),
            weight=float(assessment.weight or 0),
            class_subject_assignment_id=assignment.id,
            semester_id=assessment.semester_id,
            is_published=bool(assessment.is_published),
            class_id=assignment.class_id,
            subject_id=assignment.subject_id,
            subject_name=subject.name,
            teacher_id=assignment.teacher_id,
            academic_year_id=semester.academic_year_id,
        )

    def current_max_score(self, assessment_id: int) -> float:
        """max_score as last committed, read under a shared lock in the caller's transaction."""
        max_score = (
            db.session.query(Assessment.max_score)
            .filter(Assessment.id == assessment_id)
            .with_for_update(read=True)
            .scalar()
        )
        if max_score is None:
            raise NotFound("Assessment not found", assessment_id=assessment_id)
        return float(max_score)


class Roster:
    """getEnrolledStudents(classID, semesterID) over active enrollments."""

    def get_enrolled_students(
        self, class_id: int, semester_id: Optional[int] = None
    ) -> List[Student]:
        query = (
            db.session.query(Student)
            .join(Enrollment, Enrollment.student_id == Student.id)
            .filter(
                Enrollment.class_id == class_id,
                Enrollment.is_active.is_(True),
                Student.is_active.is_(True),
            )
        )
        if semester_id is not None:
            semester = db.session.get(Semester, semester_id)
            if semester is None:
                return []
            query = query.filter(Enrollment.academic_year_id == semester.academic_year_id)
        return query.order_by(Student.student_id_code, Student.id).all()

    def get_enrolled_student_ids(
        self, class_id: int, semester_id: Optional[int] = None
    ) -> List[int]:
        return [s.id for s in self.get_enrolled_students(class_id, semester_id)]

    def get_student_class_ids(self, student_id: int) -> List[int]:
        rows = (
            db.session.query(Enrollment.class_id)
            .filter(Enrollment.student_id == student_id, Enrollment.is_active.is_(True))
            .all()
        )
        return [r.class_id for r in rows]


class SubjectAssignments:
    """Subjects of a class across every teacher's assignment.

    A deactivated assignment still contributes the assessments it already
    has, so its published grades keep counting; with none it is left out.
    """

    def get_class_subjects(
        self, class_id: int, semester_id: Optional[int] = None, published_only: bool = True
    ) -> List[ClassSubject]:
        assignments = (
            db.session.query(ClassSubjectAssignment, Subject)
            .join(Subject, ClassSubjectAssignment.subject_id == Subject.id)
            .filter(ClassSubjectAssignment.class_id == class_id)
            .order_by(Subject.name, Subject.id)
            .all()
        )
        by_subject = {}
        assignment_subject = {}
        active_subjects = set()
        for assignment, subject in assignments:
            if assignment.is_active:
                active_subjects.add(subject.id)
            by_subject.setdefault(subject.id, (subject, []))
            assignment_subject[assignment.id] = subject.id

        if assignment_subject:
            query = db.session.query(
                Assessment.id, Assessment.class_subject_assignment_id
            ).filter(Assessment.class_subject_assignment_id.in_(list(assignment_subject)))
            if semester_id is not None:
                query = query.filter(Assessment.semester_id == semester_id)
            if published_only:
                query = query.filter(Assessment.is_published.is_(True))
            for aid, csa_id in query.order_by(Assessment.id).all():
                by_subject[assignment_subject[csa_id]][1].append(aid)

        return [
            ClassSubject(
                subject_id=subject.id,
                subject_name=subject.name,
                subject_code=subject.code,
                assessment_ids=tuple(ids),
            )
            for subject, ids in by_subject.values()
            if ids or subject.id in active_subjects
        ]


class SemesterLocks:
    """A semester is frozen when it, or its academic year, is locked."""

    def is_locked(self, semester_id: Optional[int]) -> bool:
        if semester_id is None:
            return False
        semester = db.session.get(Semester, semester_id)
        if semester is None:
            return False
        if semester.is_locked:
            return True
        year = db.session.get(AcademicYear, semester.academic_year_id)
        return bool(year and year.is_locked)
