from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class AcademicYear(db.Model):
    __tablename__ = "academic_years"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(20), unique=True, nullable=False)  # e.g., "2024/2025"
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    semesters = db.relationship("Semester", backref="academic_year")

    def __repr__(self):
        return f"<AcademicYear {self.name}>"


class Semester(db.Model):
    __tablename__ = "semesters"

    id = db.Column(db.Integer, primary_key=True)
    academic_year_id = db.Column(
        db.Integer, db.ForeignKey("academic_years.id"), nullable=False
    )
    name = db.Column(db.String(20), nullable=False)  # e.g., "1st sem"
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<Semester {self.name} (year {self.academic_year_id})>"


class Subject(db.Model):
    __tablename__ = "subjects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Subject {self.code}>"


class Teacher(db.Model):
    __tablename__ = "teachers"

    id = db.Column(db.Integer, primary_key=True)
    teacher_code = db.Column(db.String(20), unique=True, nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Teacher {self.teacher_code}>"


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    student_id_code = db.Column(db.String(20), unique=True, nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Student {self.student_id_code}>"


class Guardian(db.Model):
    __tablename__ = "guardians"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(100), nullable=True)

    def __repr__(self):
        return f"<Guardian {self.first_name} {self.last_name}>"


class GuardianStudent(db.Model):
    """Links guardians to the students they receive grade notices for."""

    __tablename__ = "guardian_students"

    id = db.Column(db.Integer, primary_key=True)
    guardian_id = db.Column(db.Integer, db.ForeignKey("guardians.id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)

    guardian = db.relationship("Guardian", backref="student_links")

    __table_args__ = (
        db.UniqueConstraint("guardian_id", "student_id", name="unique_guardian_student"),
    )


class SchoolClass(db.Model):
    __tablename__ = "classes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)  # e.g., "Grade 9 - A"
    grade_level = db.Column(db.Integer, nullable=False)
    academic_year_id = db.Column(
        db.Integer, db.ForeignKey("academic_years.id"), nullable=False
    )
    homeroom_teacher_id = db.Column(
        db.Integer, db.ForeignKey("teachers.id"), nullable=True
    )

    def __repr__(self):
        return f"<SchoolClass {self.name}>"


class ClassSubjectAssignment(db.Model):
    """A teacher teaching one subject to one class."""

    __tablename__ = "class_subject_assignments"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teachers.id"), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    school_class = db.relationship("SchoolClass")
    subject = db.relationship("Subject")
    teacher = db.relationship("Teacher")

    __table_args__ = (
        db.UniqueConstraint(
            "class_id", "subject_id", "teacher_id", name="unique_class_subject_teacher"
        ),
    )


class Enrollment(db.Model):
    __tablename__ = "enrollments"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=False)
    academic_year_id = db.Column(
        db.Integer, db.ForeignKey("academic_years.id"), nullable=False
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    enrolled_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    student = db.relationship("Student", backref="enrollments")

    __table_args__ = (
        db.UniqueConstraint("student_id", "class_id", name="unique_student_class"),
    )


class AssessmentType(db.Model):
    __tablename__ = "assessment_types"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)  # QUIZ, EXAM, ...
    name = db.Column(db.String(50), nullable=False)
    weight_default = db.Column(db.Float, nullable=False, default=0)

    def __repr__(self):
        return f"<AssessmentType {self.code} ({self.weight_default}%)>"


class Assessment(db.Model):
    __tablename__ = "assessments"

    id = db.Column(db.Integer, primary_key=True)
    class_subject_assignment_id = db.Column(
        db.Integer, db.ForeignKey("class_subject_assignments.id"), nullable=False
    )
    assessment_type_id = db.Column(
        db.Integer, db.ForeignKey("assessment_types.id"), nullable=True
    )
    semester_id = db.Column(db.Integer, db.ForeignKey("semesters.id"), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    max_score = db.Column(db.Float, nullable=False)
    weight = db.Column(db.Float, nullable=False, default=0)  # percent within subject
    assessment_date = db.Column(db.Date, nullable=True)
    is_published = db.Column(db.Boolean, nullable=False, default=False)
    published_at = db.Column(db.DateTime, nullable=True)
    created_by_teacher_id = db.Column(
        db.Integer, db.ForeignKey("teachers.id"), nullable=True
    )
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    assignment = db.relationship("ClassSubjectAssignment")
    assessment_type = db.relationship("AssessmentType")

    def __repr__(self):
        return f"<Assessment {self.title} ({self.max_score} pts)>"


class Grade(db.Model):
    """One student's score for one assessment (a score cell)."""

    __tablename__ = "grades"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    assessment_id = db.Column(
        db.Integer, db.ForeignKey("assessments.id"), nullable=False
    )
    score = db.Column(db.Float, nullable=False)
    percentage = db.Column(db.Integer, nullable=False)
    letter_grade = db.Column(db.String(10), nullable=True)
    is_published = db.Column(db.Boolean, nullable=False, default=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teachers.id"), nullable=True)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=True)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=True)
    academic_year_id = db.Column(
        db.Integer, db.ForeignKey("academic_years.id"), nullable=True
    )
    semester_id = db.Column(db.Integer, db.ForeignKey("semesters.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "student_id", "assessment_id", name="unique_student_assessment"
        ),
        db.Index("ix_grades_class_semester", "class_id", "semester_id"),
    )

    def __repr__(self):
        return f"<Grade student:{self.student_id} assessment:{self.assessment_id} {self.score}>"


class GradingScale(db.Model):
    __tablename__ = "grading_scales"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    academic_year_id = db.Column(
        db.Integer, db.ForeignKey("academic_years.id"), nullable=True
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    items = db.relationship(
        "GradingScaleItem", backref="scale", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<GradingScale {self.name}>"


class GradingScaleItem(db.Model):
    __tablename__ = "grading_scale_items"

    id = db.Column(db.Integer, primary_key=True)
    grading_scale_id = db.Column(
        db.Integer, db.ForeignKey("grading_scales.id"), nullable=False
    )
    min_percentage = db.Column(db.Float, nullable=False)
    max_percentage = db.Column(db.Float, nullable=False)
    letter_grade = db.Column(db.String(10), nullable=False)
    grade_point = db.Column(db.Float, nullable=True)
    description = db.Column(db.String(100), nullable=True)


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(20), nullable=False)  # PUBLISH, UNPUBLISH, CREATE, UPDATE
    entity_type = db.Column(db.String(20), nullable=False)  # ASSESSMENT, GRADE, ...
    entity_id = db.Column(db.String(36), nullable=True)
    details = db.Column(db.Text, nullable=True)  # JSON
    success = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_type = db.Column(db.String(20), nullable=False)  # guardian, student
    recipient_id = db.Column(db.Integer, nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    message = db.Column(db.String(255), nullable=False)
    notification_type = db.Column(db.String(20), nullable=False, default="GRADE")
    metadata_json = db.Column(db.Text, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<Notification {self.recipient_type}:{self.recipient_id} {self.title}>"
