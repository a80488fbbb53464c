import os
import sys

import pytest

# Ensure project root is on sys.path so tests can import app.py
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import create_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from models import (  # noqa: E402
    AcademicYear,
    Assessment,
    ClassSubjectAssignment,
    Enrollment,
    Guardian,
    GuardianStudent,
    SchoolClass,
    Semester,
    Student,
    Subject,
    Teacher,
    db,
)


class RecordingNotificationSink:
    """Keeps notify_guardians calls in memory; fails for student ids in fail_for."""

    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def notify_guardians(self, student_id, subject, letter_grade, score=None, max_score=None):
        if student_id in self.fail_for:
            raise RuntimeError(f"mail relay down for student {student_id}")
        self.calls.append(
            {
                "student_id": student_id,
                "subject": subject,
                "letter_grade": letter_grade,
                "score": score,
                "max_score": max_score,
            }
        )
        return 1


class RecordingAuditSink:
    def __init__(self, fail=False):
        self.entries = []
        self.fail = fail

    def record_audit(self, action, entity_type, entity_id, details=None, actor_id=None):
        if self.fail:
            raise RuntimeError("audit store unavailable")
        self.entries.append(
            {
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "details": details,
                "actor_id": actor_id,
            }
        )


class School:
    """Ids of the seeded rows, so tests read like the scenario they describe."""


def seed_school():
    year = AcademicYear(name="2025/2026", is_active=True)
    db.session.add(year)
    db.session.flush()
    sem1 = Semester(academic_year_id=year.id, name="1st sem")
    sem2 = Semester(academic_year_id=year.id, name="2nd sem")
    teacher = Teacher(teacher_code="T-001", first_name="Rosa", last_name="Dela Cruz")
    other_teacher = Teacher(teacher_code="T-002", first_name="Ben", last_name="Santos")
    math = Subject(code="MATH9", name="Mathematics")
    sci = Subject(code="SCI9", name="Science")
    db.session.add_all([sem1, sem2, teacher, other_teacher, math, sci])
    db.session.flush()

    klass = SchoolClass(
        name="Grade 9 - A", grade_level=9, academic_year_id=year.id, homeroom_teacher_id=teacher.id
    )
    db.session.add(klass)
    db.session.flush()

    math_csa = ClassSubjectAssignment(class_id=klass.id, subject_id=math.id, teacher_id=teacher.id)
    sci_csa = ClassSubjectAssignment(class_id=klass.id, subject_id=sci.id, teacher_id=other_teacher.id)
    db.session.add_all([math_csa, sci_csa])

    students = [
        Student(student_id_code=f"S-00{i}", first_name=first, last_name="Reyes")
        for i, first in enumerate(["Ana", "Ben", "Carla", "Dino"], start=1)
    ]
    db.session.add_all(students)
    db.session.flush()
    for student in students:
        db.session.add(
            Enrollment(student_id=student.id, class_id=klass.id, academic_year_id=year.id)
        )

    guardian = Guardian(first_name="Maria", last_name="Reyes", email="maria@example.com")
    db.session.add(guardian)
    db.session.flush()
    db.session.add(GuardianStudent(guardian_id=guardian.id, student_id=students[0].id))

    quiz = Assessment(
        class_subject_assignment_id=math_csa.id,
        semester_id=sem1.id,
        title="Quiz 1",
        max_score=20,
        weight=25,
        created_by_teacher_id=teacher.id,
    )
    exam = Assessment(
        class_subject_assignment_id=math_csa.id,
        semester_id=sem1.id,
        title="Midterm Exam",
        max_score=50,
        weight=75,
        created_by_teacher_id=teacher.id,
    )
    lab = Assessment(
        class_subject_assignment_id=sci_csa.id,
        semester_id=sem1.id,
        title="Lab Report",
        max_score=10,
        weight=100,
        created_by_teacher_id=other_teacher.id,
    )
    db.session.add_all([quiz, exam, lab])
    db.session.commit()

    school = School()
    school.year_id = year.id
    school.sem1_id = sem1.id
    school.sem2_id = sem2.id
    school.teacher_id = teacher.id
    school.other_teacher_id = other_teacher.id
    school.math_id = math.id
    school.sci_id = sci.id
    school.class_id = klass.id
    school.math_csa_id = math_csa.id
    school.sci_csa_id = sci_csa.id
    school.student_ids = [s.id for s in students]
    school.guardian_id = guardian.id
    school.quiz_id = quiz.id
    school.exam_id = exam.id
    school.lab_id = lab.id
    return school


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def audits():
    return RecordingAuditSink()


@pytest.fixture
def app(tmp_path, notifications, audits):
    config = TestingConfig(f"sqlite:///{tmp_path / 'class_record.db'}")
    app = create_app(config, notification_sink=notifications, audit_sink=audits)
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def school(app, ctx):
    return seed_school()


@pytest.fixture
def gradebook(app, ctx):
    return app.extensions["gradebook"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def teacher_client(client, school):
    with client.session_transaction() as sess:
        sess["user_id"] = 100
        sess["role"] = "teacher"
        sess["teacher_id"] = school.teacher_id
    return client
