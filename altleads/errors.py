"""Service-level exceptions.

Services raise these; the app-level error handler turns them into JSON
error bodies. Each carries the HTTP status it maps to.
"""


class AltLeadsError(Exception):
    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AltLeadsError):
    status_code = 400


class AuthError(AltLeadsError):
    status_code = 401


class TokenError(AuthError):
    pass


class ForbiddenError(AltLeadsError):
    status_code = 403


class NotFoundError(AltLeadsError):
    status_code = 404


class ConflictError(AltLeadsError):
    status_code = 409


class WriteError(AltLeadsError):
    """A database write failed; ``details`` carries the underlying cause."""

    status_code = 500


class CreditOverrideError(WriteError):
    """An admin credit reassignment stopped part-way.

    ``step`` names the step that failed. Steps before it stay committed.
    """

    def __init__(self, step, cause):
        super().__init__(
            f"Credit override failed at step '{step}'", details=str(cause)
        )
        self.step = step

    def to_dict(self):
        body = super().to_dict()
        body["step"] = self.step
        return body
