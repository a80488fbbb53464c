"""Student and guardian notifications and audit records fired after state changes.

Delivery is advisory: the grade rows are the source of truth, so a failed
sink call is logged and counted, never raised to the operation that
triggered it.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from models import AuditLog, GuardianStudent, Notification, Student, db
from utils.errors import DownstreamUnavailable

logger = logging.getLogger(__name__)


class DatabaseNotificationSink:
    """Writes one notification row for the student and one per linked guardian.

    Uses its own session so a failure here cannot touch the caller's
    committed transaction.
    """

    def notify_guardians(
        self,
        student_id: int,
        subject: str,
        letter_grade: Optional[str],
        score: Optional[float] = None,
        max_score: Optional[float] = None,
    ) -> int:
        with Session(db.engine) as session:
            student = session.get(Student, student_id)
            if student is None:
                raise DownstreamUnavailable("Unknown student for notification", student_id=student_id)
            links = (
                session.query(GuardianStudent)
                .filter(GuardianStudent.student_id == student_id)
                .all()
            )
            score_text = f" ({score:g}/{max_score:g})" if score is not None and max_score else ""
            metadata = json.dumps(
                {
                    "student_name": student.full_name,
                    "subject": subject,
                    "grade": letter_grade,
                    "score": score,
                    "max_score": max_score,
                }
            )
            session.add(
                Notification(
                    recipient_type="student",
                    recipient_id=student_id,
                    student_id=student_id,
                    title="New Grade Published",
                    message=f"You received a grade of {letter_grade}{score_text} in {subject}",
                    notification_type="GRADE",
                    metadata_json=metadata,
                )
            )
            for link in links:
                session.add(
                    Notification(
                        recipient_type="guardian",
                        recipient_id=link.guardian_id,
                        student_id=student_id,
                        title="Grade Published for Your Child",
                        message=f"{student.full_name} received a grade of {letter_grade}{score_text} in {subject}",
                        notification_type="GRADE",
                        metadata_json=metadata,
                    )
                )
            session.commit()
            return len(links) + 1


class DatabaseAuditSink:
    def record_audit(
        self,
        action: str,
        entity_type: str,
        entity_id,
        details: Optional[dict] = None,
        actor_id: Optional[int] = None,
    ):
        with Session(db.engine) as session:
            session.add(
                AuditLog(
                    actor_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=str(entity_id) if entity_id is not None else None,
                    details=json.dumps(details, default=str) if details is not None else None,
                    success=True,
                )
            )
            session.commit()


@dataclass
class FanoutOutcome:
    delivered: int = 0
    failures: List[DownstreamUnavailable] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class FanoutAdapter:
    """Calls the sinks one recipient at a time and isolates every failure."""

    def __init__(self, notification_sink, audit_sink):
        self.notification_sink = notification_sink
        self.audit_sink = audit_sink

    def audit(self, action, entity_type, entity_id, details=None, actor_id=None) -> bool:
        try:
            self.audit_sink.record_audit(
                action, entity_type, entity_id, details, actor_id=actor_id
            )
            return True
        except Exception as e:
            logger.error(
                f"Audit {action} for {entity_type}:{entity_id} failed: {str(e)}"
            )
            return False

    def notify_all(self, notices) -> FanoutOutcome:
        """notices: iterable of dicts with student_id, subject, letter_grade, score, max_score."""
        outcome = FanoutOutcome()
        for notice in notices:
            student_id = notice["student_id"]
            try:
                self.notification_sink.notify_guardians(
                    student_id,
                    notice["subject"],
                    notice["letter_grade"],
                    score=notice.get("score"),
                    max_score=notice.get("max_score"),
                )
                outcome.delivered += 1
            except Exception as e:
                logger.warning(
                    f"Grade notification for student {student_id} failed: {str(e)}"
                )
                outcome.failures.append(
                    DownstreamUnavailable(str(e), student_id=student_id)
                )
        return outcome
