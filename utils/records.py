"""Typed records passed between the store, the writer and the read side."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from utils.errors import ValidationFailed
from utils.grade_calculation import round_half_up


def _presented(value: Optional[float]) -> Optional[float]:
    return None if value is None else round_half_up(value, 1)


@dataclass(frozen=True)
class GradeRecord:
    """A score cell with every column present; optional ones may be None."""

    student_id: int
    assessment_id: int
    score: float
    percentage: int
    letter_grade: Optional[str]
    is_published: bool = False
    teacher_id: Optional[int] = None
    class_id: Optional[int] = None
    subject_id: Optional[int] = None
    academic_year_id: Optional[int] = None
    semester_id: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.student_id is None or self.assessment_id is None:
            raise ValidationFailed("grade requires student_id and assessment_id")
        if self.score is None or self.score < 0:
            raise ValidationFailed("grade score must be non-negative", score=self.score)
        if self.percentage is None or not 0 <= self.percentage <= 100:
            raise ValidationFailed(
                "grade percentage must be within 0..100", percentage=self.percentage
            )

    @classmethod
    def from_model(cls, grade) -> "GradeRecord":
        return cls(
            id=grade.id,
            student_id=grade.student_id,
            assessment_id=grade.assessment_id,
            score=float(grade.score),
            percentage=int(grade.percentage),
            letter_grade=grade.letter_grade,
            is_published=bool(grade.is_published),
            teacher_id=grade.teacher_id,
            class_id=grade.class_id,
            subject_id=grade.subject_id,
            academic_year_id=grade.academic_year_id,
            semester_id=grade.semester_id,
            created_at=grade.created_at,
            updated_at=grade.updated_at,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("created_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass(frozen=True)
class AssessmentInfo:
    id: int
    title: str
    max_score: float
    weight: float
    class_subject_assignment_id: int
    semester_id: int
    is_published: bool
    class_id: int
    subject_id: int
    subject_name: str
    teacher_id: Optional[int]
    academic_year_id: Optional[int]


@dataclass(frozen=True)
class ClassSubject:
    subject_id: int
    subject_name: str
    subject_code: str
    assessment_ids: tuple = ()


@dataclass(frozen=True)
class SubjectAverage:
    average: float
    assessments_considered: int

    @property
    def has_data(self) -> bool:
        return self.assessments_considered > 0

    def to_dict(self) -> dict:
        return {
            "average": _presented(self.average) if self.has_data else None,
            "assessments_considered": self.assessments_considered,
            "has_data": self.has_data,
        }


@dataclass
class SubjectResult:
    subject_id: int
    subject_name: str
    subject_code: str
    average: float
    assessments_considered: int

    @property
    def has_data(self) -> bool:
        return self.assessments_considered > 0

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "subject_code": self.subject_code,
            "average": _presented(self.average) if self.has_data else None,
            "assessments_considered": self.assessments_considered,
        }


@dataclass
class ClassRankRow:
    student_id: int
    student_id_code: str
    full_name: str
    subjects: list = field(default_factory=list)
    total: float = 0.0
    average: float = 0.0
    subjects_with_data: int = 0
    rank: Optional[int] = None

    @property
    def has_data(self) -> bool:
        return self.subjects_with_data > 0

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "student_id_code": self.student_id_code,
            "full_name": self.full_name,
            "subjects": [s.to_dict() for s in self.subjects],
            "total": _presented(self.total) if self.has_data else None,
            "average": _presented(self.average) if self.has_data else None,
            "subjects_with_data": self.subjects_with_data,
            "rank": self.rank,
        }


@dataclass
class PublishResult:
    assessment_id: int
    is_published: bool
    changed: bool
    grade_count: int = 0
    late_grades_published: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    audit_recorded: bool = False

    def to_dict(self) -> dict:
        return asdict(self)
