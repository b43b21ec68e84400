"""Domain error taxonomy shared by services and routers."""


class PortalError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Bad or missing input."""

    status_code = 400


class InvalidStateError(PortalError):
    """Operation not legal for the entity's current state."""

    status_code = 409


class NotFoundError(PortalError):
    """Referenced entity does not exist."""

    status_code = 404


class AuthorizationError(PortalError):
    """Caller lacks the required role or membership."""

    status_code = 403


class AuthenticationError(PortalError):
    """Sign-in credentials are missing, invalid or expired."""

    status_code = 401


class TooManyRequestsError(PortalError):
    """Caller exceeded a per-identifier attempt limit."""

    status_code = 429
