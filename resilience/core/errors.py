"""
Error taxonomy shared by services and routers.

Services raise these; the handlers registered in ``resilience.main`` turn
them into ``{"error": code, "detail": message}`` responses.
"""


class AppError(Exception):
    """Base class for handled application errors."""

    status_code = 500
    code = "internal"
    message = "Something went wrong, please try again"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required"


class AccessDenied(AppError):
    status_code = 403
    code = "access_denied"
    message = "Access denied"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class InvalidInput(AppError):
    status_code = 400
    code = "invalid_input"
    message = "Invalid request"


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    message = "Request conflicts with current state"


class Internal(AppError):
    pass


# Access codes. The redeem contract answers every refusal with 401.

class InvalidCode(Unauthorized):
    code = "invalid_code"
    message = "Invalid assessment code"


class CohortInactive(Conflict):
    status_code = 401
    code = "cohort_inactive"
    message = "This assessment is no longer available"


class CodeExpired(Conflict):
    status_code = 401
    code = "code_expired"
    message = "This assessment code has expired"


class CodeExhausted(Conflict):
    status_code = 401
    code = "code_exhausted"
    message = "This code has already been used the maximum number of times"


# Sessions

class SessionNotFound(Unauthorized):
    code = "session_not_found"
    message = "Invalid or expired session"


class SessionClosed(Unauthorized):
    code = "session_closed"
    message = "This assessment has already been completed"


# Responses

class InvalidQuestion(InvalidInput):
    code = "invalid_question"

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Invalid question ID: {question_id}")


class OutOfRange(InvalidInput):
    code = "out_of_range"

    def __init__(self, question_id: str, value, scale_max: int):
        self.question_id = question_id
        self.value = value
        self.scale_max = scale_max
        super().__init__(f"Invalid response value for question {question_id}: expected an integer between 1 and {scale_max}")


# Score ranges

class InvalidScoreRanges(Conflict):
    status_code = 400
    code = "invalid_score_ranges"
    message = "Score ranges must be continuous without gaps or overlaps"
