"""spysync exception classes."""


class SpySyncException(Exception):
    """Base exception for all spysync errors."""
    pass


class ConnectionTimeout(SpySyncException):
    """Raised when the transport did not report a live connection in time."""
    pass


class SessionClosed(ConnectionTimeout):
    """Raised when a wait is abandoned because the owning session was closed."""
    pass


class PreconditionUnmet(SpySyncException):
    """Raised when an action is requested without the room, game or connection it needs."""
    pass


class ServerRejection(SpySyncException):
    """An error reported by the server through a ``room_error`` or ``error`` event."""

    def __init__(self, message: str, event: str = "error"):
        super().__init__(message)
        self.message = message
        self.event = event


class StorageFailure(SpySyncException):
    """Raised when the durable store cannot be read or written."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Storage failure for key '{key}': {reason}")
        self.key = key
        self.reason = reason
