"""
Shared test doubles: a scripted socket, a fake resolver and a small
threaded broker that speaks enough STOMP for end-to-end tests.
"""

import socket
import threading
import time
from typing import Dict, List, Tuple

import pytest

from src.stomplite.connection import ConnectionManager
from src.stomplite.protocol import Commands, FrameBuffer, ProtocolFrame


CONNECTED_FRAME = ProtocolFrame(Commands.CONNECTED, {"version": "1.2", "server": "FakeMQ/1.0"})


class MockSocket:
    """Socket double: records writes and replays scripted reads."""

    def __init__(self):
        self.sent_data: List[bytes] = []
        self.receive_data: List = []
        self.connected = False
        self.closed = False
        self.close_count = 0
        self.timeout = None
        self.timeouts: List = []
        self.address = None
        self.should_raise_on_connect = None
        self.should_raise_on_send = None

    def settimeout(self, timeout):
        self.timeout = timeout
        self.timeouts.append(timeout)

    def connect(self, address):
        if self.should_raise_on_connect:
            raise self.should_raise_on_connect
        self.address = address
        self.connected = True

    def sendall(self, data):
        if self.should_raise_on_send:
            raise self.should_raise_on_send
        self.sent_data.append(bytes(data))

    def recv(self, size):
        if not self.receive_data:
            raise socket.timeout("timed out")

        data = self.receive_data.pop(0)
        if isinstance(data, Exception):
            raise data
        if len(data) > size:
            self.receive_data.insert(0, data[size:])
            data = data[:size]
        return data

    def close(self):
        self.connected = False
        self.closed = True
        self.close_count += 1

    def add_response(self, frame_or_data):
        """Queue a frame (encoded) or raw bytes / an exception for recv."""
        if isinstance(frame_or_data, ProtocolFrame):
            frame_or_data = frame_or_data.encode()
        self.receive_data.append(frame_or_data)

    def sent_frames(self) -> List[ProtocolFrame]:
        buffer = FrameBuffer()
        for data in self.sent_data:
            buffer.feed(data)
        return buffer.frames()


class FakeResolver:
    """Resolver double returning fixed addresses, or raising error."""

    def __init__(self, addresses=None, error=None):
        self.addresses = addresses or [(socket.AF_INET, ("127.0.0.1", 61613))]
        self.error = error
        self.calls: List[Tuple[str, int]] = []

    def resolve(self, host, port):
        self.calls.append((host, port))
        if self.error:
            raise self.error
        return self.addresses


class SocketFactory:
    """Hands out the given sockets in order, then fresh MockSockets."""

    def __init__(self, *sockets):
        self.sockets = list(sockets)
        self.created: List[MockSocket] = []

    def __call__(self, family, sock_type):
        sock = self.sockets.pop(0) if self.sockets else MockSocket()
        self.created.append(sock)
        return sock


class FakeBroker:
    """
    In-process broker on 127.0.0.1.

    Answers CONNECT with CONNECTED (or ERROR when rejecting), and routes SEND
    frames as MESSAGE frames to the first subscriber of the destination.
    Messages sent before anyone subscribes are queued and flushed, in one
    write, when the subscription arrives.
    """

    def __init__(self, reject: bool = False):
        self.reject = reject
        self.received: List[ProtocolFrame] = []
        self.subscribers: Dict[str, List[Tuple[socket.socket, str]]] = {}
        self.queued: Dict[str, List[ProtocolFrame]] = {}
        self.lock = threading.Lock()
        self.message_counter = 0
        self.clients: List[socket.socket] = []
        self.running = True

        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server.bind(("127.0.0.1", 0))
        self.server.listen(5)
        self.server.settimeout(0.1)
        self.port = self.server.getsockname()[1]

        self.thread = threading.Thread(target=self._accept_loop, daemon=True)
        self.thread.start()

    def _accept_loop(self):
        while self.running:
            try:
                client, _ = self.server.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            client.settimeout(None)
            with self.lock:
                self.clients.append(client)
            threading.Thread(target=self._serve, args=(client,), daemon=True).start()

    def _serve(self, client):
        buffer = FrameBuffer()
        while True:
            try:
                chunk = client.recv(4096)
            except OSError:
                return
            if not chunk:
                return
            buffer.feed(chunk)
            for frame in buffer.frames():
                with self.lock:
                    keep_open = self._handle(client, frame)
                if not keep_open:
                    client.close()
                    return

    def _handle(self, client, frame) -> bool:
        self.received.append(frame)

        if frame.command == Commands.CONNECT:
            if self.reject:
                client.sendall(ProtocolFrame(
                    Commands.ERROR, {"message": "Access refused"}, b"CONNECT not allowed"
                ).encode())
                return False
            client.sendall(CONNECTED_FRAME.encode())

        elif frame.command == Commands.SUBSCRIBE:
            destination = frame.headers["destination"]
            self.subscribers.setdefault(destination, []).append((client, frame.headers["id"]))
            waiting = self.queued.pop(destination, [])
            if waiting:
                client.sendall(b"".join(
                    self._message(destination, frame.headers["id"], sent).encode() for sent in waiting
                ))

        elif frame.command == Commands.SEND:
            destination = frame.headers["destination"]
            targets = self.subscribers.get(destination)
            if targets:
                target, subscription_id = targets[0]
                target.sendall(self._message(destination, subscription_id, frame).encode())
            else:
                self.queued.setdefault(destination, []).append(frame)

        elif frame.command == Commands.DISCONNECT:
            for subscriptions in self.subscribers.values():
                subscriptions[:] = [s for s in subscriptions if s[0] is not client]
            return False

        return True

    def _message(self, destination, subscription_id, sent) -> ProtocolFrame:
        self.message_counter += 1
        headers = {
            "destination": destination,
            "subscription": subscription_id,
            "message-id": f"msg-{self.message_counter}",
        }
        if "content-type" in sent.headers:
            headers["content-type"] = sent.headers["content-type"]
        return ProtocolFrame(Commands.MESSAGE, headers, sent.body)

    def frames(self, command) -> List[ProtocolFrame]:
        with self.lock:
            return [f for f in self.received if f.command == command]

    def wait_for(self, command, count: int = 1, timeout: float = 2.0) -> List[ProtocolFrame]:
        """Wait until count frames of command have arrived; frames are handled on server threads."""
        deadline = time.monotonic() + timeout
        frames = self.frames(command)
        while len(frames) < count and time.monotonic() < deadline:
            time.sleep(0.01)
            frames = self.frames(command)
        return frames

    def close(self):
        self.running = False
        self.server.close()
        with self.lock:
            for client in self.clients:
                try:
                    client.close()
                except OSError:
                    pass


@pytest.fixture
def mock_socket():
    return MockSocket()


@pytest.fixture
def manager_factory():
    """Build a ConnectionManager over scripted sockets; no real sleeping."""
    def build(*sockets, resolver=None, **kwargs):
        kwargs.setdefault("sleep", lambda seconds: None)
        return ConnectionManager(
            resolver=resolver or FakeResolver(),
            socket_factory=SocketFactory(*sockets),
            **kwargs
        )
    return build


@pytest.fixture
def connection(mock_socket, manager_factory):
    """A CONNECTED connection over mock_socket, with the handshake traffic cleared."""
    mock_socket.add_response(CONNECTED_FRAME)
    conn = manager_factory(mock_socket).connect("broker.test", 61613, max_attempts=1)
    mock_socket.sent_data.clear()
    return conn


@pytest.fixture
def broker():
    broker = FakeBroker()
    yield broker
    broker.close()


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
