import pytest

from models import Grade, db
from utils.db_conn import store_call
from utils.errors import ConstraintViolation, NotFound, ValidationFailed
from utils.records import GradeRecord
from utils.score_store import ScoreCellStore


def _record(school, student_id, score, percentage, letter="B", published=False):
    return GradeRecord(
        student_id=student_id,
        assessment_id=school.quiz_id,
        score=score,
        percentage=percentage,
        letter_grade=letter,
        is_published=published,
        teacher_id=school.teacher_id,
        class_id=school.class_id,
        subject_id=school.math_id,
        academic_year_id=school.year_id,
        semester_id=school.sem1_id,
    )


def test_upsert_inserts_then_updates_one_row(school):
    store = ScoreCellStore()
    student_id = school.student_ids[0]

    first = store.upsert(_record(school, student_id, 15, 75, "C"))
    db.session.commit()
    second = store.upsert(_record(school, student_id, 17, 85, "B"))
    db.session.commit()

    assert first.id == second.id
    assert second.score == 17
    assert second.percentage == 85
    assert second.letter_grade == "B"
    assert db.session.query(Grade).filter_by(assessment_id=school.quiz_id).count() == 1


def test_upsert_never_clears_publish_flag(school):
    store = ScoreCellStore()
    student_id = school.student_ids[0]
    store.upsert(_record(school, student_id, 15, 75, published=True))
    db.session.commit()

    updated = store.upsert(_record(school, student_id, 16, 80, published=False))
    db.session.commit()

    assert updated.is_published is True
    assert updated.score == 16


def test_get_missing_cell(school):
    store = ScoreCellStore()
    assert store.find(school.quiz_id, school.student_ids[0]) is None
    with pytest.raises(NotFound):
        store.get(school.quiz_id, school.student_ids[0])


def test_publish_flag_bulk_update_and_published_lookup(school):
    store = ScoreCellStore()
    for student_id, score in zip(school.student_ids[:3], (10, 15, 20)):
        store.upsert(_record(school, student_id, score, score * 5))
    db.session.commit()

    assert store.published_grades_for([school.quiz_id]) == {}
    assert store.set_published_for_assessment(school.quiz_id, True) == 3
    db.session.commit()

    published = store.published_grades_for([school.quiz_id], [school.student_ids[1]])
    assert list(published) == [(school.quiz_id, school.student_ids[1])]
    assert published[(school.quiz_id, school.student_ids[1])].percentage == 75
    assert [g.student_id for g in store.list_for_assessment(school.quiz_id)] == sorted(
        school.student_ids[:3]
    )


def test_record_rejects_out_of_range_percentage(school):
    with pytest.raises(ValidationFailed):
        _record(school, school.student_ids[0], 10, 101)
    with pytest.raises(ValidationFailed):
        _record(school, school.student_ids[0], -1, 0)


def test_duplicate_insert_becomes_constraint_violation(school):
    values = dict(
        student_id=school.student_ids[0],
        assessment_id=school.quiz_id,
        score=10,
        percentage=50,
        letter_grade="F",
    )
    db.session.add(Grade(**values))
    db.session.commit()

    with pytest.raises(ConstraintViolation) as excinfo:
        with store_call("duplicate"):
            db.session.add(Grade(**values))
            db.session.commit()
    assert excinfo.value.retryable is True
    assert db.session.query(Grade).count() == 1
