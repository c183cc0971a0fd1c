"""Error taxonomy shared by the learner engine and the API service.

Read-side failures are absorbed by the engine (fail open); write-side and
mint-side failures are surfaced to the caller as non-fatal notices. Only
``IneligibleState`` is meant to stop a learner outright.
"""

from __future__ import annotations


class AcademyError(Exception):
    """Base class for all engine and service errors."""

    status_code: int = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NetworkFailure(AcademyError):
    """An endpoint was unreachable or answered with a non-success status."""

    status_code = 502

    def __init__(self, endpoint: str, status: int | None = None, message: str = "") -> None:
        detail = message or (f"{endpoint} returned {status}" if status else f"{endpoint} unreachable")
        super().__init__(detail)
        self.endpoint = endpoint
        self.status = status


class ProgressRejected(AcademyError):
    """The progress store confirmed it will not accept a completion."""

    status_code = 400


class AuthenticationRequired(AcademyError):
    """A gated action was attempted without a connected wallet."""

    status_code = 401


class IdentityMissing(AcademyError):
    """A gated action needs an identity link that does not exist yet."""

    status_code = 403


class AlreadyProcessed(AcademyError):
    """Duplicate completion or duplicate mint."""

    status_code = 409


class IneligibleState(AcademyError):
    """Mint attempted without meeting the level's requirements."""

    status_code = 403


class ConcurrentOperation(AcademyError):
    """Mint attempted while another mint is in flight."""

    status_code = 409
