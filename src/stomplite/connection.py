"""
STOMP-Lite connection management.

This module owns the transport side of a session: resolving the broker's
hostname, opening the TCP socket, the CONNECT/CONNECTED handshake, retries,
and releasing the socket again.
"""

import logging
import socket
import threading
import time
from typing import Callable, List, Optional, Tuple
from .protocol import Commands, FrameBuffer, ProtocolFrame, ProtocolHandler
from .session import SessionRecorder
from ..utils.logging import describe_frame
from .exceptions import (
    CancelledError, ConnectionClosedError, ConnectionError, FrameDecodingError, HandshakeError,
    NotConnectedError, ProtocolError, ResolutionError, TimeoutError, TransportError
)


DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BACKOFF = 3.0
DEFAULT_CONNECT_TIMEOUT = 5.0
RECV_SIZE = 4096


class ConnectionState:
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CLOSED = "CLOSED"


class Resolver:
    """
    Resolves broker hostnames to TCP socket addresses.

    Swap in another object with the same resolve() method to avoid real DNS
    lookups.
    """

    def resolve(self, host: str, port: int) -> List[Tuple[int, tuple]]:
        """
        Resolve host and port.

        Returns:
            List of (address family, socket address) pairs, in preference order

        Raises:
            ResolutionError: If the host has no address
        """
        try:
            infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(f"Error resolving hostname {host}: {e}")

        addresses = []
        for family, _, _, _, sockaddr in infos:
            if (family, sockaddr) not in addresses:
                addresses.append((family, sockaddr))

        if not addresses:
            raise ResolutionError(f"No address found for hostname {host}")
        return addresses


class Connection:
    """
    A single TCP connection to a STOMP-Lite broker.

    The connection owns its socket exclusively and releases it exactly once.
    It is not thread-safe: sending and receiving share one socket and one
    read buffer.
    """

    def __init__(self, host: str, port: int, timeout: Optional[float] = None,
                 recorder: Optional[SessionRecorder] = None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.state = ConnectionState.DISCONNECTED
        self.socket: Optional[socket.socket] = None
        self.buffer = FrameBuffer()
        self.version: Optional[str] = None
        self.server: Optional[str] = None
        self.session_recorder = recorder
        self.protocol_handler = ProtocolHandler()
        self.logger = logging.getLogger(__name__)

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def attach(self, sock: socket.socket) -> None:
        """Take ownership of a freshly connected socket."""
        if self.socket is not None:
            raise RuntimeError("Connection already owns a socket")
        if self.state == ConnectionState.CLOSED:
            raise RuntimeError("Connection is closed")
        self.socket = sock
        self.buffer.clear()
        self.state = ConnectionState.CONNECTING

    def send_frame(self, frame: ProtocolFrame) -> None:
        """
        Send a protocol frame to the broker.

        Raises:
            NotConnectedError: If no socket is attached
            TransportError: If sending fails; the connection is closed
        """
        if self.socket is None:
            raise NotConnectedError("Not connected to broker")

        command_name = self.protocol_handler.get_command_name(frame.command)
        try:
            self.socket.settimeout(self.timeout)
            self.socket.sendall(frame.encode())
        except OSError as e:
            error_msg = f"Failed to send {command_name} frame: {e}"
            self.logger.error(error_msg)
            self._record_error(error_msg, "send_failed")
            self.release(ConnectionState.CLOSED)
            raise TransportError(error_msg)

        self.logger.debug(f"Sent {describe_frame(frame)}")
        if self.session_recorder:
            self.session_recorder.record_request(frame, f"Sent {command_name}")

    def receive_frame(self, timeout: Optional[float] = None) -> ProtocolFrame:
        """
        Receive the next frame from the broker.

        Frames already sitting in the read buffer are returned before the
        socket is read again.

        Args:
            timeout: Seconds to wait for a complete frame; None blocks

        Raises:
            NotConnectedError: If no socket is attached
            TimeoutError: If no complete frame arrived in time; state unchanged
            ConnectionClosedError: If the broker closed the connection
            TransportError: If reading fails
            FrameDecodingError: If the broker sent a malformed frame; the
                connection is closed
        """
        if self.socket is None:
            raise NotConnectedError("Not connected to broker")

        deadline = None if timeout is None else time.monotonic() + timeout
        frame = self._next_buffered_frame()
        while frame is None:
            if deadline is None:
                self.socket.settimeout(None)
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError(f"No frame received within {timeout}s")
                self.socket.settimeout(remaining)

            try:
                chunk = self.socket.recv(RECV_SIZE)
            except socket.timeout:
                raise TimeoutError(f"No frame received within {timeout}s")
            except OSError as e:
                error_msg = f"Failed to receive frame: {e}"
                self.logger.error(error_msg)
                self._record_error(error_msg, "receive_failed")
                self.release(ConnectionState.CLOSED)
                raise TransportError(error_msg)

            if not chunk:
                self.logger.warning("Broker closed the connection")
                self._record_error("Broker closed the connection", "server_disconnected")
                self.release(ConnectionState.CLOSED)
                raise ConnectionClosedError("Broker closed the connection")

            self.buffer.feed(chunk)
            frame = self._next_buffered_frame()

        command_name = self.protocol_handler.get_command_name(frame.command)
        self.logger.debug(f"Received {describe_frame(frame)}")
        if self.session_recorder:
            self.session_recorder.record_response(frame, f"Received {command_name}")
        return frame

    def _next_buffered_frame(self) -> Optional[ProtocolFrame]:
        """
        Take the next complete frame from the read buffer.

        A malformed frame leaves the stream out of sync, so the connection is
        closed before the decoding error propagates.
        """
        try:
            return self.buffer.next_frame()
        except FrameDecodingError as e:
            error_msg = f"Malformed frame from broker: {e}"
            self.logger.error(error_msg)
            self._record_error(error_msg, "malformed_frame")
            self.release(ConnectionState.CLOSED)
            raise

    def disconnect(self) -> None:
        """
        Send DISCONNECT if connected and release the socket.

        Failure to send DISCONNECT is ignored. Calling this on a closed
        connection does nothing.
        """
        if self.state == ConnectionState.CLOSED:
            return

        if self.state == ConnectionState.CONNECTED:
            try:
                self.send_frame(self.protocol_handler.create_disconnect_frame())
            except TransportError as e:
                self.logger.warning(f"Ignoring DISCONNECT failure: {e}")

        self.release(ConnectionState.CLOSED)
        self.logger.info(f"Disconnected from {self.host}:{self.port}")
        if self.session_recorder:
            self.session_recorder.record_event("disconnection", "Client disconnected")

    def release(self, state: str) -> None:
        """Close the socket, if any, and move to state."""
        sock, self.socket = self.socket, None
        self.state = state
        self.buffer.clear()
        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                self.logger.warning(f"Error closing socket: {e}")

    def _record_error(self, description: str, error_type: str) -> None:
        if self.session_recorder:
            self.session_recorder.record_event("error", description, {"error_type": error_type})

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.disconnect()

    def __repr__(self) -> str:
        return f"Connection(host={self.host!r}, port={self.port}, state={self.state})"


class ConnectionManager:
    """
    Establishes and tears down STOMP-Lite connections.
    """

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        socket_factory: Optional[Callable[..., socket.socket]] = None,
        sleep: Callable[[float], None] = time.sleep,
        recorder: Optional[SessionRecorder] = None,
    ):
        self.resolver = resolver or Resolver()
        self.socket_factory = socket_factory or socket.socket
        self.sleep = sleep
        self.session_recorder = recorder
        self.protocol_handler = ProtocolHandler()
        self.logger = logging.getLogger(__name__)

    def connect(
        self,
        host: str,
        port: int,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff: float = DEFAULT_BACKOFF,
        connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
        cancel: Optional[threading.Event] = None,
    ) -> Connection:
        """
        Connect to the broker, retrying failed attempts.

        Args:
            host: Broker hostname or IP address
            port: Broker STOMP port
            max_attempts: Number of attempts before giving up
            backoff: Seconds to wait between attempts
            connect_timeout: Bound on the TCP connect and on the handshake
            cancel: Event that aborts the retry loop when set

        Returns:
            Connection: A connection in CONNECTED state

        Raises:
            ConnectionError: When every attempt failed or the caller cancelled
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        connection = Connection(host, port, timeout=connect_timeout, recorder=self.session_recorder)
        last_cause: Optional[Exception] = None
        attempts = 0

        for attempt in range(1, max_attempts + 1):
            if cancel is not None and cancel.is_set():
                last_cause = CancelledError("Connect cancelled")
                break

            attempts = attempt
            self.logger.info(f"Connection attempt {attempt}/{max_attempts} to {host}:{port}")
            try:
                self._attempt(connection, connect_timeout)
                return connection
            except (ResolutionError, TransportError, HandshakeError) as e:
                last_cause = e
                self.logger.warning(f"Connection attempt {attempt}/{max_attempts} failed: {e}")
                if self.session_recorder:
                    self.session_recorder.record_event(
                        "error", str(e),
                        {"error_type": type(e).__name__, "attempt": attempt}
                    )

            if attempt < max_attempts:
                self.logger.info(f"Retrying in {backoff} seconds...")
                if cancel is not None:
                    if cancel.wait(backoff):
                        last_cause = CancelledError("Connect cancelled")
                        break
                else:
                    self.sleep(backoff)

        self.logger.error(f"Failed to connect to {host}:{port} after {attempts} attempt(s)")
        raise ConnectionError(attempts, last_cause)

    def disconnect(self, connection: Connection) -> None:
        """Disconnect from the broker. Idempotent."""
        connection.disconnect()

    def _attempt(self, connection: Connection, connect_timeout: Optional[float]) -> None:
        """Run one resolve + TCP connect + handshake attempt."""
        succeeded = False
        connection.state = ConnectionState.CONNECTING
        try:
            addresses = self.resolver.resolve(connection.host, connection.port)
            connection.attach(self._open_socket(connection, addresses, connect_timeout))
            self._handshake(connection, connect_timeout)
            succeeded = True
        finally:
            if not succeeded:
                connection.release(ConnectionState.DISCONNECTED)

    def _open_socket(self, connection: Connection, addresses: List[Tuple[int, tuple]],
                     connect_timeout: Optional[float]) -> socket.socket:
        """Connect to the first reachable address."""
        last_error: Optional[OSError] = None
        for family, sockaddr in addresses:
            sock = None
            try:
                sock = self.socket_factory(family, socket.SOCK_STREAM)
                sock.settimeout(connect_timeout)
                sock.connect(sockaddr)
                return sock
            except OSError as e:
                last_error = e
                if sock is not None:
                    sock.close()

        raise TransportError(
            f"Error connecting to {connection.host}:{connection.port}: {last_error}"
        )

    def _handshake(self, connection: Connection, connect_timeout: Optional[float]) -> None:
        """
        Exchange CONNECT/CONNECTED.

        Raises:
            HandshakeError: On an ERROR frame, a malformed or unexpected
                reply, no reply in time, or the broker hanging up
            TransportError: If the socket fails
        """
        connection.send_frame(self.protocol_handler.create_connect_frame(connection.host))

        try:
            response = connection.receive_frame(timeout=connect_timeout)
        except TimeoutError:
            raise HandshakeError(f"No CONNECTED frame received within {connect_timeout}s")
        except ConnectionClosedError:
            raise HandshakeError("Broker closed the connection during the handshake")
        except ProtocolError as e:
            raise HandshakeError(f"Malformed handshake response: {e}")

        if response.command == Commands.ERROR:
            reason = response.headers.get("message") or response.body.decode("utf-8", errors="replace")
            raise HandshakeError(f"Broker rejected CONNECT: {reason}")
        if response.command != Commands.CONNECTED:
            raise HandshakeError(f"Expected CONNECTED, got {response.command}")

        connection.version = response.headers.get("version", "1.0")
        connection.server = response.headers.get("server")
        connection.state = ConnectionState.CONNECTED

        self.logger.info(
            f"Connected to {connection.host}:{connection.port} (STOMP {connection.version})"
        )
        if self.session_recorder:
            self.session_recorder.record_event(
                "connection",
                f"Connected to {connection.host}:{connection.port}",
                {"host": connection.host, "port": connection.port,
                 "version": connection.version, "server": connection.server}
            )
