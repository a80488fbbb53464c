import json

import pytest

from models import Assessment, AuditLog, Notification, Semester, db
from utils.errors import NotFound, SemesterLocked
from utils.fanout import DatabaseAuditSink, DatabaseNotificationSink, FanoutAdapter
from utils.publish import PublishCoordinator
from conftest import RecordingAuditSink, RecordingNotificationSink


def _grade_quiz(school, gradebook, scores=(17, 12, 20)):
    for student_id, score in zip(school.student_ids, scores):
        gradebook.writer.save_score(school.quiz_id, student_id, score, school.teacher_id)


def _coordinator(gradebook, notification_sink, audit_sink):
    return PublishCoordinator(
        gradebook.store,
        gradebook.assessments,
        FanoutAdapter(notification_sink, audit_sink),
        gradebook.semester_locks,
    )


def test_publish_flips_assessment_and_grades(school, gradebook, notifications, audits):
    _grade_quiz(school, gradebook)

    result = gradebook.publisher.publish(school.quiz_id, school.teacher_id)

    assert result.changed is True
    assert result.is_published is True
    assert result.grade_count == 3
    assert result.notifications_sent == 3
    assert result.notifications_failed == 0
    assert result.audit_recorded is True
    assert all(g.is_published for g in gradebook.store.list_for_assessment(school.quiz_id))
    assert db.session.get(Assessment, school.quiz_id).published_at is not None

    assert [c["student_id"] for c in notifications.calls] == school.student_ids[:3]
    assert notifications.calls[0] == {
        "student_id": school.student_ids[0],
        "subject": "Mathematics",
        "letter_grade": "B",
        "score": 17,
        "max_score": 20,
    }
    assert audits.entries == [
        {
            "action": "PUBLISH",
            "entity_type": "ASSESSMENT",
            "entity_id": school.quiz_id,
            "details": {"assessment_title": "Quiz 1", "grades_count": 3},
            "actor_id": school.teacher_id,
        }
    ]


def test_publish_twice_is_a_no_op(school, gradebook, notifications, audits):
    _grade_quiz(school, gradebook)
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)

    again = gradebook.publisher.publish(school.quiz_id, school.teacher_id)

    assert again.changed is False
    assert again.is_published is True
    assert len(notifications.calls) == 3
    assert len(audits.entries) == 1


def test_unpublish_hides_grades_without_notifying(school, gradebook, notifications, audits):
    _grade_quiz(school, gradebook)
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)

    result = gradebook.publisher.unpublish(school.quiz_id, school.teacher_id)

    assert result.changed is True
    assert result.is_published is False
    assert result.notifications_sent == 0
    assert not any(g.is_published for g in gradebook.store.list_for_assessment(school.quiz_id))
    assert db.session.get(Assessment, school.quiz_id).published_at is None
    assert len(notifications.calls) == 3
    assert [e["action"] for e in audits.entries] == ["PUBLISH", "UNPUBLISH"]


def test_failing_recipient_does_not_undo_publish(school, gradebook):
    _grade_quiz(school, gradebook)
    flaky = RecordingNotificationSink(fail_for={school.student_ids[1]})
    coordinator = _coordinator(gradebook, flaky, RecordingAuditSink())

    result = coordinator.publish(school.quiz_id, school.teacher_id)

    assert result.changed is True
    assert result.notifications_sent == 2
    assert result.notifications_failed == 1
    assert [c["student_id"] for c in flaky.calls] == [school.student_ids[0], school.student_ids[2]]
    db.session.expire_all()
    assert db.session.get(Assessment, school.quiz_id).is_published is True


def test_failing_audit_does_not_undo_publish(school, gradebook):
    _grade_quiz(school, gradebook)
    coordinator = _coordinator(gradebook, RecordingNotificationSink(), RecordingAuditSink(fail=True))

    result = coordinator.publish(school.quiz_id, school.teacher_id)

    assert result.changed is True
    assert result.audit_recorded is False
    assert result.notifications_sent == 3


def test_publish_unknown_assessment(school, gradebook):
    with pytest.raises(NotFound):
        gradebook.publisher.publish(9999, school.teacher_id)


def test_publish_in_locked_semester(school, gradebook):
    db.session.get(Semester, school.sem1_id).is_locked = True
    db.session.commit()
    with pytest.raises(SemesterLocked):
        gradebook.publisher.publish(school.quiz_id, school.teacher_id)
    db.session.expire_all()
    assert db.session.get(Assessment, school.quiz_id).is_published is False


def test_database_sinks_write_rows(school, gradebook):
    _grade_quiz(school, gradebook)
    coordinator = _coordinator(gradebook, DatabaseNotificationSink(), DatabaseAuditSink())

    result = coordinator.publish(school.quiz_id, school.teacher_id)

    # every graded student is told; only the first has a guardian on file
    assert result.notifications_sent == 3
    students = (
        db.session.query(Notification)
        .filter(Notification.recipient_type == "student")
        .order_by(Notification.recipient_id)
        .all()
    )
    assert [n.recipient_id for n in students] == school.student_ids[:3]
    assert {n.title for n in students} == {"New Grade Published"}
    assert students[0].message == "You received a grade of B (17/20) in Mathematics"

    notice = db.session.query(Notification).filter(Notification.recipient_type == "guardian").one()
    assert notice.recipient_id == school.guardian_id
    assert notice.student_id == school.student_ids[0]
    assert notice.title == "Grade Published for Your Child"
    assert "Mathematics" in notice.message
    assert json.loads(notice.metadata_json)["grade"] == "B"
    assert db.session.query(Notification).count() == 4

    log = db.session.query(AuditLog).one()
    assert log.action == "PUBLISH"
    assert log.entity_id == str(school.quiz_id)
    assert json.loads(log.details) == {"assessment_title": "Quiz 1", "grades_count": 3}


def test_republish_reveals_late_grades_only(school, gradebook, notifications, audits):
    s0, s1 = school.student_ids[:2]
    gradebook.writer.save_score(school.quiz_id, s0, 17, school.teacher_id)
    gradebook.publisher.publish(school.quiz_id, school.teacher_id)
    late = gradebook.writer.save_score(school.quiz_id, s1, 18, school.teacher_id)
    assert late.is_published is False

    result = gradebook.publisher.publish(school.quiz_id, school.teacher_id)

    assert result.changed is True
    assert result.grade_count == 1
    assert result.late_grades_published == 1
    assert result.notifications_sent == 1
    assert gradebook.store.get(school.quiz_id, s1).is_published is True
    assert [c["student_id"] for c in notifications.calls] == [s0, s1]
    assert audits.entries[-1]["details"] == {
        "assessment_title": "Quiz 1",
        "grades_count": 1,
        "late_grades": True,
    }
    average = gradebook.aggregation.subject_average(s1, school.math_id, school.sem1_id)
    assert average.average == pytest.approx(90.0)

    # nothing left to reveal
    again = gradebook.publisher.publish(school.quiz_id, school.teacher_id)
    assert again.changed is False
    assert len(notifications.calls) == 2
    assert len(audits.entries) == 2
