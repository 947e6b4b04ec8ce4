# coursemax/errors.py
"""Failures that cross the boundary of the settlement and dispatch core.

Routes raise these and ``main.py`` maps each one to a JSON error response.
A driver losing the acceptance race is *not* one of them: see
``models.AcceptOutcome``.
"""


class CourseMaxError(Exception):
    status_code = 500
    public_message = "Internal server error"
    retryable = False

    def __init__(self, message=None, detail=None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.detail = detail

    def to_dict(self):
        payload = {"status": "error", "message": self.message}
        if self.detail:
            payload["detail"] = self.detail
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationFailure(CourseMaxError):
    """Malformed request. Never retried."""

    status_code = 400
    public_message = "Invalid request"


class NotFound(CourseMaxError):
    status_code = 404
    public_message = "Resource not found"


class ComputationImpossible(CourseMaxError):
    """The distance provider answered but found no route or no address.

    No fallback fee is ever substituted.
    """

    status_code = 422
    public_message = "Unable to calculate delivery fee, please retry"


class DependencyUnavailable(CourseMaxError):
    """Distance provider or storage unreachable, failing or timed out."""

    status_code = 503
    public_message = "Service temporarily unavailable, please try again"
    retryable = True


class ProviderMisconfigured(DependencyUnavailable):
    """The provider refused our credentials. Retrying will not help until config is fixed."""

    public_message = "Service misconfigured, please contact support"
    retryable = False
