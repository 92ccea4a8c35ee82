from buildtrack.domain.results import CoreError, ErrorKind


class BuildTrackError(Exception):
    """Base exception for BuildTrack, classified by an ErrorKind."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_error(self) -> CoreError:
        return CoreError(self.kind, self.message, self.details)


class UnauthorizedError(BuildTrackError):
    """Raised when no valid session is present for the project."""

    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(BuildTrackError):
    """Raised when the principal's role is not in the allowed set."""

    kind = ErrorKind.FORBIDDEN
