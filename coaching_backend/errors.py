class CoachingError(Exception):
    """Base error for the coaching backend."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IdentityError(CoachingError):
    """Student or teacher is missing, has the wrong role or is inactive."""

    status_code = 404


class ReportRenderError(CoachingError):
    status_code = 500


class SlotsExhaustedError(CoachingError):
    status_code = 409
