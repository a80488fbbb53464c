"""Wires the grade engine components together from the Flask config."""

import logging

from flask import Flask, current_app

from utils.aggregation import AggregationEngine
from utils.assessments import AssessmentManager
from utils.autosave import AutoSaveWriter
from utils.fanout import DatabaseAuditSink, DatabaseNotificationSink, FanoutAdapter
from utils.grade_calculation import grading_scale_for_policy
from utils.projections import ReadProjections
from utils.providers import AssessmentDirectory, Roster, SemesterLocks, SubjectAssignments
from utils.publish import PublishCoordinator
from utils.score_store import ScoreCellStore

logger = logging.getLogger(__name__)


class Gradebook:
    def __init__(
        self,
        config,
        notification_sink=None,
        audit_sink=None,
        grading_scale=None,
        assessments=None,
        roster=None,
        subject_assignments=None,
        semester_locks=None,
    ):
        timeout = config.get("GRADE_STORE_TIMEOUT")
        self.store = ScoreCellStore()
        self.assessments = assessments or AssessmentDirectory()
        self.roster = roster or Roster()
        self.subject_assignments = subject_assignments or SubjectAssignments()
        self.semester_locks = semester_locks or SemesterLocks()
        self.grading_scale = grading_scale or grading_scale_for_policy(
            config.get("LETTER_GRADE_POLICY", "scale")
        )
        self.fanout = FanoutAdapter(
            notification_sink or DatabaseNotificationSink(),
            audit_sink or DatabaseAuditSink(),
        )
        self.writer = AutoSaveWriter(
            self.store,
            self.assessments,
            self.grading_scale,
            self.semester_locks,
            default_timeout=timeout,
            auto_publish_late_grades=config.get("AUTO_PUBLISH_LATE_GRADES", False),
            allow_edit_after_publish=config.get("ALLOW_EDIT_AFTER_PUBLISH", True),
        )
        self.publisher = PublishCoordinator(
            self.store,
            self.assessments,
            self.fanout,
            self.semester_locks,
            default_timeout=timeout,
        )
        self.aggregation = AggregationEngine(
            self.store,
            self.roster,
            self.subject_assignments,
            rank_policy=config.get("RANK_TIE_POLICY", "competition"),
        )
        self.projections = ReadProjections(
            self.store,
            self.assessments,
            self.roster,
            self.subject_assignments,
            self.aggregation,
            self.grading_scale,
            passing_percentage=config.get("PASSING_PERCENTAGE", 50.0),
        )
        self.assessment_manager = AssessmentManager(
            self.grading_scale, self.semester_locks, audit=self.fanout.audit
        )


def init_gradebook(app: Flask, **overrides) -> Gradebook:
    gradebook = Gradebook(app.config, **overrides)
    app.extensions["gradebook"] = gradebook
    logger.info(
        f"Grade engine ready (rank policy {app.config.get('RANK_TIE_POLICY')}, "
        f"letter grades via {type(gradebook.grading_scale).__name__})"
    )
    return gradebook


def get_gradebook() -> Gradebook:
    return current_app.extensions["gradebook"]
