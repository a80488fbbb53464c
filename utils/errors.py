"""Error taxonomy shared by the grade engine and its HTTP surface."""


class GradebookError(Exception):
    """Base class; code and http_status drive the JSON error response."""

    code = "gradebook_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str = "", **detail):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.detail = detail

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message, "retryable": self.retryable}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class InvalidScore(GradebookError):
    code = "invalid_score"
    http_status = 400


class ValidationFailed(GradebookError):
    code = "invalid_payload"
    http_status = 400


class NotFound(GradebookError):
    code = "not_found"
    http_status = 404


class ConstraintViolation(GradebookError):
    code = "constraint_violation"
    http_status = 409
    retryable = True


class AssessmentLocked(GradebookError):
    code = "assessment_locked"
    http_status = 409


class SemesterLocked(GradebookError):
    code = "semester_locked"
    http_status = 409


class DownstreamUnavailable(GradebookError):
    code = "downstream_unavailable"
    http_status = 502


class StoreTimeout(GradebookError):
    code = "timeout"
    http_status = 503
    retryable = True
