"""
STOMP-Lite protocol client.
"""

from .connection import Connection, ConnectionManager, ConnectionState, Resolver
from .protocol import Commands, FrameBuffer, ProtocolFrame, ProtocolHandler
from .publisher import Publisher
from .subscriber import Subscriber, Subscription
from .exceptions import (
    CancelledError, ConnectionClosedError, ConnectionError, FrameDecodingError,
    HandshakeError, NotConnectedError, ProtocolError, ResolutionError,
    StompLiteError, TimeoutError, TransportError
)

__all__ = [
    "Commands", "FrameBuffer", "ProtocolFrame", "ProtocolHandler",
    "Connection", "ConnectionManager", "ConnectionState", "Resolver",
    "Publisher", "Subscriber", "Subscription",
    "StompLiteError", "ProtocolError", "FrameDecodingError", "TransportError",
    "ConnectionClosedError", "ResolutionError", "HandshakeError",
    "NotConnectedError", "TimeoutError", "CancelledError", "ConnectionError",
]
