"""
Custom exceptions for the STOMP-Lite client.
"""


class StompLiteError(Exception):
    """Base exception for all STOMP-Lite related errors."""
    pass


class ProtocolError(StompLiteError):
    """Raised when protocol violations occur.

    When the violation is an unexpected frame (an ERROR frame from the
    broker, or a command the client did not expect) the frame is attached.
    """

    def __init__(self, message: str, frame=None):
        super().__init__(message)
        self.frame = frame


class FrameDecodingError(ProtocolError):
    """Raised when frame decoding fails."""
    pass


class TransportError(StompLiteError):
    """Raised when the TCP transport fails to connect, write or read."""
    pass


class ConnectionClosedError(TransportError):
    """Raised when the broker closes the connection."""
    pass


class ResolutionError(StompLiteError):
    """Raised when a hostname has no usable address."""
    pass


class HandshakeError(StompLiteError):
    """Raised when the CONNECT/CONNECTED exchange fails."""
    pass


class NotConnectedError(StompLiteError):
    """Raised when an operation needs a CONNECTED connection."""
    pass


class TimeoutError(StompLiteError):
    """Raised when an operation times out."""
    pass


class CancelledError(StompLiteError):
    """Raised when a caller cancels a pending connect."""
    pass


class ConnectionError(StompLiteError):
    """Raised when every connection attempt has failed."""

    def __init__(self, attempts: int, last_cause: Exception):
        super().__init__(
            f"Failed to connect after {attempts} attempt(s): {last_cause}"
        )
        self.attempts = attempts
        self.last_cause = last_cause
