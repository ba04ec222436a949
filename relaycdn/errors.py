class RelayError(Exception):
    """Base class for errors surfaced to HTTP callers as ``{"detail": ...}``."""

    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidRequest(RelayError):
    status_code = 400
    default_detail = "Missing required fields"


class FileTooLarge(InvalidRequest):
    status_code = 413
    default_detail = "File too large"


class AuthFailure(RelayError):
    status_code = 401
    default_detail = "Invalid password"


class InvalidTicket(RelayError):
    status_code = 403
    default_detail = "Invalid or expired upload ticket"


class ObjectNotFound(RelayError):
    status_code = 404
    default_detail = "File not found"


class QuotaExceeded(RelayError):
    status_code = 429
    default_detail = "Quota exceeded. Try again later."


class StoreError(RelayError):
    status_code = 502
    default_detail = "Object store unavailable"


class AdminNotConfigured(RelayError):
    status_code = 503
    default_detail = "Admin password is not configured"
