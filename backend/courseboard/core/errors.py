"""
Typed failures of the progress, grading and ranking engine.

All of them are expected, recoverable conditions. They carry the HTTP status
the API answers with, storage failures are left to propagate untouched.
"""


class CourseboardError(Exception):
    """Base class for engine errors."""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CourseboardError):
    """Referenced course, module, quiz or user does not exist."""

    status_code = 404


class AlreadyEnrolledError(CourseboardError):
    """Enroll called twice for the same user and course."""

    status_code = 400


class NotEnrolledError(CourseboardError):
    """Progress operation for a user without an enrollment."""

    status_code = 404


class InvalidModuleError(CourseboardError):
    """Module id does not belong to the stated course."""

    status_code = 400


class InvalidSubmissionError(CourseboardError):
    """Submission references a question outside the quiz."""

    status_code = 422


class NotRankedError(CourseboardError):
    """Window requested for a user absent from the ranking."""

    status_code = 404
