import pytest

from models import Assessment, GradingScale, GradingScaleItem, db
from utils.errors import NotFound


@pytest.fixture
def graded(school, gradebook):
    s0, s1, s2, s3 = school.student_ids
    save = gradebook.writer.save_score
    save(school.quiz_id, s0, 16, school.teacher_id)  # 80%
    save(school.exam_id, s0, 45, school.teacher_id)  # 90%
    save(school.quiz_id, s1, 20, school.teacher_id)  # 100%
    save(school.quiz_id, s2, 9, school.teacher_id)  # 45%
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)
    gradebook.publisher.publish(school.exam_id, school.teacher_id)
    return school


def test_transcript_groups_published_grades_by_subject(graded, gradebook):
    transcript = gradebook.projections.student_transcript(graded.student_ids[0], graded.sem1_id)

    assert transcript["student_id_code"] == "S-001"
    assert transcript["full_name"] == "Ana Reyes"
    math, science = transcript["subjects"]
    assert math["subject_name"] == "Mathematics"
    assert [a["title"] for a in math["assessments"]] == ["Quiz 1", "Midterm Exam"]
    assert math["assessments"][0]["percentage"] == 80
    assert math["average"] == 87.5
    assert math["letter_grade"] == "B"
    assert science["assessments"] == []
    assert science["average"] is None
    assert transcript["overall_average"] == 87.5


def test_transcript_hides_draft_assessments(school, gradebook):
    gradebook.writer.save_score(school.quiz_id, school.student_ids[0], 16, school.teacher_id)
    transcript = gradebook.projections.student_transcript(school.student_ids[0])
    assert all(s["assessments"] == [] for s in transcript["subjects"])
    assert transcript["overall_average"] is None


def test_transcript_unknown_student(school, gradebook):
    with pytest.raises(NotFound):
        gradebook.projections.student_transcript(9999)


def test_leaderboard_with_limit(graded, gradebook):
    board = gradebook.projections.class_leaderboard(graded.class_id, graded.sem1_id, limit=2)

    assert board["class_id"] == graded.class_id
    assert [s["subject_name"] for s in board["subjects"]] == ["Mathematics", "Science"]
    assert [(s["student_id_code"], s["rank"]) for s in board["students"]] == [
        ("S-002", 1),
        ("S-001", 2),
    ]


def test_assessment_progress_lists_pending_students(graded, gradebook):
    progress = gradebook.projections.assessment_progress(graded.exam_id)

    assert progress["total_students"] == 4
    assert progress["graded_students"] == 1
    assert progress["pending_students"] == 3
    assert progress["pending_student_ids"] == graded.student_ids[1:]


def test_assessment_statistics(graded, gradebook):
    stats = gradebook.projections.assessment_statistics(graded.quiz_id)

    assert stats["count"] == 3
    assert stats["mean"] == 75.0
    assert stats["median"] == 80.0
    assert stats["min"] == 45.0
    assert stats["max"] == 100.0
    assert stats["pass_rate"] == pytest.approx(66.7)
    assert stats["grade_distribution"] == {"B": 1, "A": 1, "F": 1}


def test_statistics_without_grades(school, gradebook):
    stats = gradebook.projections.assessment_statistics(school.lab_id)
    assert stats["count"] == 0
    assert stats["mean"] is None
    assert stats["grade_distribution"] == {}


def test_presented_averages_round_half_up(school, gradebook):
    s0 = school.student_ids[0]
    gradebook.writer.save_score(school.quiz_id, s0, 17, school.teacher_id)  # 85%, weight 25
    gradebook.writer.save_score(school.exam_id, s0, 44, school.teacher_id)  # 88%, weight 75
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)
    gradebook.publisher.publish(school.exam_id, school.teacher_id)

    transcript = gradebook.projections.student_transcript(s0, school.sem1_id)
    assert transcript["subjects"][0]["average"] == 87.3
    board = gradebook.projections.class_leaderboard(school.class_id, school.sem1_id, limit=1)
    assert board["students"][0]["average"] == 87.3
    average = gradebook.aggregation.subject_average(s0, school.math_id, school.sem1_id)
    assert average.to_dict()["average"] == 87.3


def _year_scale(school):
    scale = GradingScale(name="2025 numeric", academic_year_id=school.year_id, is_active=True)
    scale.items = [
        GradingScaleItem(min_percentage=90, max_percentage=100, letter_grade="1.0"),
        GradingScaleItem(min_percentage=0, max_percentage=89, letter_grade="2.0"),
    ]
    db.session.add(scale)
    db.session.commit()


def test_transcript_letter_uses_the_academic_year_scale(school, gradebook):
    _year_scale(school)
    s0 = school.student_ids[0]
    cell = gradebook.writer.save_score(school.quiz_id, s0, 17, school.teacher_id)
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)

    transcript = gradebook.projections.student_transcript(s0, school.sem1_id)
    assert cell.letter_grade == "2.0"
    assert transcript["subjects"][0]["letter_grade"] == "2.0"


def test_transcript_letter_for_average_between_integer_bands(school, gradebook):
    _year_scale(school)
    for assessment_id in (school.quiz_id, school.exam_id):
        db.session.get(Assessment, assessment_id).weight = 50
    db.session.commit()
    s0 = school.student_ids[0]
    gradebook.writer.save_score(school.quiz_id, s0, 17.8, school.teacher_id)  # 89%
    gradebook.writer.save_score(school.exam_id, s0, 45, school.teacher_id)  # 90%
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)
    gradebook.publisher.publish(school.exam_id, school.teacher_id)

    math = gradebook.projections.student_transcript(s0, school.sem1_id)["subjects"][0]
    assert math["average"] == 89.5
    assert math["letter_grade"] == "1.0"
