"""
Exam lifecycle error taxonomy

Services raise these; the exception handler in examcore.main turns them into
{success: false, message, error} responses.
"""
from typing import Any, Dict, Optional


class ExamError(Exception):
    """Base class for every expected, client-facing failure"""

    status_code = 400
    code = "EXAM_ERROR"
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": self.code}
        if self.details:
            error["details"] = self.details
        return {"success": False, "message": self.message, "error": error}


class NotStartedYet(ExamError):
    status_code = 400
    code = "NOT_STARTED_YET"
    default_message = "Exam has not started yet"


class Expired(ExamError):
    status_code = 400
    code = "EXPIRED"
    default_message = "Exam window has ended"


class AttemptExpired(Expired):
    default_message = "Time is up, the attempt has been closed"


class SessionUnavailable(ExamError):
    status_code = 409
    code = "SESSION_UNAVAILABLE"
    default_message = "Exam session is not open"


class MaxAttemptsExceeded(ExamError):
    status_code = 409
    code = "MAX_ATTEMPTS_EXCEEDED"
    default_message = "Maximum number of attempts reached"


class NotFound(ExamError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class Unauthorized(ExamError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class Forbidden(ExamError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Insufficient permissions"


class InvalidState(ExamError):
    status_code = 409
    code = "INVALID_STATE"
    default_message = "Attempt is not in a valid state for this operation"


class InvalidAnswer(ExamError):
    status_code = 400
    code = "INVALID_ANSWER"
    default_message = "Answer payload is not valid for this question"


class ConcurrentUpdate(ExamError):
    status_code = 409
    code = "CONCURRENT_UPDATE"
    default_message = "Attempt was modified concurrently, please retry"


class StorageUnavailable(ExamError):
    status_code = 503
    code = "STORAGE_UNAVAILABLE"
    default_message = "Storage is temporarily unavailable, please retry"

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["error"]["retryable"] = True
        return body
