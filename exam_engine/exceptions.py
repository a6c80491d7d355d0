"""
Exam engine error taxonomy

Conditions fatal to a single request. Recoverable problems (unresolvable
questions, malformed choice mappings) are reported as Degradation warnings
instead of being raised.
"""


class ExamEngineError(Exception):
    """Base error carrying the HTTP status and error code for the transport layer"""

    status_code = 500
    error = "exam_engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.error,
            "message": self.message,
            "status_code": self.status_code,
        }


class NoQuestionsAvailable(ExamEngineError):
    status_code = 404
    error = "no_questions_available"


class QuestionNotFound(ExamEngineError):
    status_code = 404
    error = "question_not_found"


class InvalidSelection(ExamEngineError):
    status_code = 400
    error = "invalid_selection"


class ExamNotFound(ExamEngineError):
    status_code = 404
    error = "exam_not_found"


class ExamExpired(ExamEngineError):
    status_code = 410
    error = "exam_expired"


class AlreadySubmitted(ExamEngineError):
    status_code = 409
    error = "already_submitted"
