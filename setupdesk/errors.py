"""Error taxonomy for the synchronization core.

None of these errors is fatal: the scheduler records transport and shape
failures for display and keeps polling, the HTTP layer turns mutation
failures into responses for the operator.
"""


class DeskError(Exception):
    """Base class for every error raised by SetupDesk."""


class TransportError(DeskError):
    """Network failure, HTTP error status, or an unreadable response body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ShapeError(DeskError):
    """Payload is not shaped like anything the normalizer understands.

    Missing optional fields never raise this; only payloads that cannot be
    read at all (e.g. a list where an object is expected).
    """


class MutationRejected(DeskError):
    """The backend answered an enter/exit request with ``success: false``.

    ``str(exc)`` is the backend's error text, unmodified.
    """


class InvalidTransition(DeskError):
    """A trade action was refused client-side before any network call."""
