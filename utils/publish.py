import logging
from datetime import datetime
from typing import Optional

from models import Assessment, db
from utils.db_conn import store_call
from utils.errors import NotFound, SemesterLocked
from utils.key_locks import KeyedLocks
from utils.records import PublishResult

logger = logging.getLogger(__name__)


class PublishCoordinator:
    """Draft <-> published transitions for one assessment at a time.

    The state change commits first; audit and grade notifications run
    afterwards and can fail without undoing it.
    """

    def __init__(
        self,
        store,
        assessments,
        fanout,
        semester_locks,
        locks: Optional[KeyedLocks] = None,
        default_timeout: Optional[float] = None,
    ):
        self.store = store
        self.assessments = assessments
        self.fanout = fanout
        self.semester_locks = semester_locks
        self.locks = locks or KeyedLocks("assessment transition")
        self.default_timeout = default_timeout

    def publish(self, assessment_id: int, actor_id: int, timeout: Optional[float] = None) -> PublishResult:
        return self._transition(assessment_id, True, actor_id, timeout)

    def unpublish(self, assessment_id: int, actor_id: int, timeout: Optional[float] = None) -> PublishResult:
        return self._transition(assessment_id, False, actor_id, timeout)

    def _transition(self, assessment_id, publish, actor_id, timeout) -> PublishResult:
        timeout = self.default_timeout if timeout is None else timeout
        late_students = None
        with self.locks.hold(assessment_id, timeout=timeout):
            with store_call("publish" if publish else "unpublish"):
                assessment = (
                    db.session.query(Assessment)
                    .filter(Assessment.id == assessment_id)
                    .with_for_update()
                    .first()
                )
                if assessment is None:
                    raise NotFound("Assessment not found", assessment_id=assessment_id)
                already = bool(assessment.is_published) == publish
                if self.semester_locks.is_locked(assessment.semester_id):
                    db.session.rollback()
                    if already:
                        return PublishResult(
                            assessment_id=assessment_id, is_published=publish, changed=False
                        )
                    raise SemesterLocked(
                        "Semester is locked; publish state can no longer change",
                        semester_id=assessment.semester_id,
                    )

                if already and publish:
                    # Re-publishing sweeps up grades saved after the first publish
                    late_students = self.store.publish_hidden_grades(assessment_id)
                    if not late_students:
                        db.session.rollback()
                        logger.info(f"Assessment {assessment_id} already published; nothing to do")
                        return PublishResult(
                            assessment_id=assessment_id, is_published=True, changed=False
                        )
                    grade_count = len(late_students)
                elif already:
                    db.session.rollback()
                    logger.info(f"Assessment {assessment_id} already draft; nothing to do")
                    return PublishResult(
                        assessment_id=assessment_id, is_published=False, changed=False
                    )
                else:
                    assessment.is_published = publish
                    assessment.published_at = datetime.now() if publish else None
                    grade_count = self.store.set_published_for_assessment(assessment_id, publish)
                db.session.commit()

        if late_students is not None:
            logger.info(
                f"Assessment {assessment_id} re-published by teacher {actor_id}: "
                f"{grade_count} late grades now visible"
            )
        else:
            logger.info(
                f"Assessment {assessment_id} {'published' if publish else 'unpublished'} "
                f"by teacher {actor_id} ({grade_count} grades)"
            )
        result = PublishResult(
            assessment_id=assessment_id,
            is_published=publish,
            changed=True,
            grade_count=grade_count,
            late_grades_published=len(late_students or ()),
        )
        try:
            self._fan_out(result, actor_id, only_students=late_students)
        except Exception as e:
            # The transition is committed; fan-out problems are reported, not raised
            db.session.rollback()
            logger.error(f"Fan-out after assessment {assessment_id} transition failed: {str(e)}")
        return result

    def _fan_out(self, result: PublishResult, actor_id: int, only_students=None):
        action = "PUBLISH" if result.is_published else "UNPUBLISH"
        try:
            info = self.assessments.get_assessment(result.assessment_id)
            title = info.title
        except NotFound:
            info, title = None, None
        details = {"assessment_title": title, "grades_count": result.grade_count}
        if only_students is not None:
            details["late_grades"] = True
        result.audit_recorded = self.fanout.audit(
            action, "ASSESSMENT", result.assessment_id, details, actor_id=actor_id
        )
        if not result.is_published or info is None:
            return

        recipients = set(only_students) if only_students is not None else None
        notices = [
            {
                "student_id": grade.student_id,
                "subject": info.subject_name,
                "letter_grade": grade.letter_grade,
                "score": grade.score,
                "max_score": info.max_score,
            }
            for grade in self.store.list_for_assessment(result.assessment_id)
            if grade.is_published and (recipients is None or grade.student_id in recipients)
        ]
        outcome = self.fanout.notify_all(notices)
        result.notifications_sent = outcome.delivered
        result.notifications_failed = outcome.failed
        if outcome.failed:
            logger.warning(
                f"Assessment {result.assessment_id}: {outcome.failed} grade notifications failed"
            )
