"""Read-only views assembled from the store and the aggregation engine."""

import logging
from collections import Counter
from typing import Optional

import numpy as np

from models import Assessment, Student, db
from utils.errors import NotFound
from utils.grade_calculation import letter_grade_for, round_half_up, weighted_average

logger = logging.getLogger(__name__)


class ReadProjections:
    def __init__(
        self,
        store,
        assessments,
        roster,
        subject_assignments,
        aggregation,
        grading_scale,
        passing_percentage: float = 50.0,
    ):
        self.store = store
        self.assessments = assessments
        self.roster = roster
        self.subject_assignments = subject_assignments
        self.aggregation = aggregation
        self.grading_scale = grading_scale
        self.passing_percentage = passing_percentage

    def student_transcript(self, student_id: int, semester_id: Optional[int] = None) -> dict:
        """Published grades of one student grouped by subject, with weighted averages."""
        student = db.session.get(Student, student_id)
        if student is None:
            raise NotFound("Student not found", student_id=student_id)

        subjects = {}
        for class_id in self.roster.get_student_class_ids(student_id):
            for subject in self.subject_assignments.get_class_subjects(class_id, semester_id):
                entry = subjects.setdefault(
                    subject.subject_id,
                    {"subject": subject, "assessment_ids": []},
                )
                entry["assessment_ids"].extend(subject.assessment_ids)

        all_ids = [aid for entry in subjects.values() for aid in entry["assessment_ids"]]
        grades = self.store.published_grades_for(all_ids, [student_id])
        assessments = {}
        if all_ids:
            assessments = {
                a.id: a
                for a in db.session.query(Assessment).filter(Assessment.id.in_(all_ids)).all()
            }

        rows = []
        for entry in subjects.values():
            subject = entry["subject"]
            graded = []
            year_id = None
            for aid in entry["assessment_ids"]:
                grade = grades.get((aid, student_id))
                if grade is None:
                    continue
                year_id = year_id or grade.academic_year_id
                assessment = assessments[aid]
                graded.append(
                    {
                        "assessment_id": aid,
                        "title": assessment.title,
                        "assessment_date": assessment.assessment_date.isoformat()
                        if assessment.assessment_date
                        else None,
                        "score": grade.score,
                        "max_score": assessment.max_score,
                        "weight": assessment.weight,
                        "percentage": grade.percentage,
                        "letter_grade": grade.letter_grade,
                    }
                )
            average, considered = weighted_average(
                (g["percentage"], g["weight"]) for g in graded
            )
            rows.append(
                {
                    "subject_id": subject.subject_id,
                    "subject_name": subject.subject_name,
                    "subject_code": subject.subject_code,
                    "assessments": graded,
                    "average": round_half_up(average, 1) if considered else None,
                    # Looked up on the same integer percentage a stored cell would carry
                    "letter_grade": letter_grade_for(
                        self.grading_scale, round_half_up(average), academic_year_id=year_id
                    )
                    if considered
                    else None,
                }
            )

        with_data = [r["average"] for r in rows if r["average"] is not None]
        overall = sum(with_data) / len(with_data) if with_data else None
        return {
            "student_id": student.id,
            "student_id_code": student.student_id_code,
            "full_name": student.full_name,
            "semester_id": semester_id,
            "subjects": rows,
            "overall_average": round_half_up(overall, 1) if overall is not None else None,
        }

    def class_leaderboard(
        self, class_id: int, semester_id: Optional[int], limit: Optional[int] = None
    ) -> dict:
        ranking = self.aggregation.class_ranking(class_id, semester_id)
        rows = []
        for row in ranking:
            if limit is not None and len(rows) >= limit:
                break
            rows.append(row.to_dict())
        return {
            "class_id": class_id,
            "semester_id": semester_id,
            "subjects": [
                {"subject_id": s.subject_id, "subject_name": s.subject_name, "subject_code": s.subject_code}
                for s in ranking.subjects()
            ],
            "students": rows,
        }

    def assessment_progress(self, assessment_id: int) -> dict:
        """How many enrolled students still have no grade for the assessment."""
        info = self.assessments.get_assessment(assessment_id)
        enrolled = self.roster.get_enrolled_student_ids(info.class_id, info.semester_id)
        graded = {g.student_id for g in self.store.list_for_assessment(assessment_id)}
        pending = [sid for sid in enrolled if sid not in graded]
        return {
            "assessment_id": assessment_id,
            "title": info.title,
            "is_published": info.is_published,
            "total_students": len(enrolled),
            "graded_students": len(enrolled) - len(pending),
            "pending_students": len(pending),
            "pending_student_ids": pending,
        }

    def assessment_statistics(self, assessment_id: int) -> dict:
        info = self.assessments.get_assessment(assessment_id)
        grades = self.store.list_for_assessment(assessment_id)
        stats = {
            "assessment_id": assessment_id,
            "count": len(grades),
            "mean": None,
            "median": None,
            "std_dev": None,
            "min": None,
            "max": None,
            "pass_rate": None,
            "grade_distribution": {},
        }
        if not grades:
            return stats

        percentages = np.array([g.percentage for g in grades], dtype=float)
        stats.update(
            {
                "mean": round_half_up(float(np.mean(percentages)), 2),
                "median": round_half_up(float(np.median(percentages)), 2),
                "std_dev": round_half_up(float(np.std(percentages)), 2),
                "min": float(np.min(percentages)),
                "max": float(np.max(percentages)),
                "pass_rate": round_half_up(
                    float(np.mean(percentages >= self.passing_percentage)) * 100, 1
                ),
                "grade_distribution": dict(
                    Counter(g.letter_grade or "N/A" for g in grades)
                ),
            }
        )
        logger.debug(f"Statistics for assessment {assessment_id} ({info.title}): {stats}")
        return stats
