"""
STOMP-Lite frame protocol implementation.

This module handles the encoding and decoding of STOMP-Lite frames. It performs
no I/O: bytes read from the transport are fed to a FrameBuffer, which hands
back complete frames in the order they were received.
"""

from typing import Dict, List, Optional, Tuple, Union
from .exceptions import FrameDecodingError


ACCEPT_VERSION = "1.0,1.1,1.2"
HEART_BEAT = "0,0"
ACK_MODE = "auto"
NULL = b"\x00"


# Protocol Commands
class Commands:
    # Client commands
    CONNECT = "CONNECT"
    SEND = "SEND"
    SUBSCRIBE = "SUBSCRIBE"
    DISCONNECT = "DISCONNECT"

    # Server commands
    CONNECTED = "CONNECTED"
    MESSAGE = "MESSAGE"
    ERROR = "ERROR"

    ALL = frozenset([CONNECT, CONNECTED, SEND, SUBSCRIBE, MESSAGE, DISCONNECT, ERROR])

    # CONNECT and CONNECTED predate header escaping and are sent verbatim
    UNESCAPED = frozenset([CONNECT, CONNECTED])


_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r", "c": ":"}


def escape_header(value: str) -> str:
    """Escape a header name or value for the wire."""
    return "".join(_ESCAPES.get(char, char) for char in value)


def unescape_header(value: str) -> str:
    """
    Reverse escape_header.

    Raises:
        FrameDecodingError: On an undefined escape sequence
    """
    if "\\" not in value:
        return value

    result = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            result.append(char)
            continue
        escaped = next(chars, None)
        if escaped not in _UNESCAPES:
            raise FrameDecodingError(f"Invalid header escape sequence: \\{escaped or ''}")
        result.append(_UNESCAPES[escaped])
    return "".join(result)


class ProtocolFrame:
    """
    Represents a STOMP-Lite protocol frame.

    Frame Format:
    COMMAND \\n | name:value \\n (zero or more) | \\n | BODY | NUL

    A frame with a non-empty body always carries a content-length header on
    the wire, so bodies may contain NUL bytes.
    """

    def __init__(
        self,
        command: str,
        headers: Optional[Dict[str, str]] = None,
        body: Union[bytes, str] = b"",
    ):
        if command not in Commands.ALL:
            raise ValueError(f"Unknown command: {command!r}")
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.command = command
        self.headers: Dict[str, str] = {
            str(name): str(value) for name, value in (headers or {}).items()
        }
        self.body = bytes(body)

    def encode(self) -> bytes:
        """
        Encode the frame for transmission.

        Returns:
            bytes: Encoded frame, terminated by a single NUL byte
        """
        headers = dict(self.headers)
        if self.body or "content-length" in headers:
            headers["content-length"] = str(len(self.body))

        escape = self.command not in Commands.UNESCAPED
        lines = [self.command]
        for name, value in headers.items():
            if escape:
                name, value = escape_header(name), escape_header(value)
            lines.append(f"{name}:{value}")

        head = "\n".join(lines) + "\n\n"
        return head.encode("utf-8") + self.body + NULL

    @classmethod
    def decode(cls, data: Union[bytes, bytearray]) -> Optional[Tuple["ProtocolFrame", int]]:
        """
        Decode the first complete frame in data.

        Leading end-of-line bytes (heart-beats) are skipped.

        Args:
            data: Bytes received from the network, possibly holding a partial
                frame or several frames

        Returns:
            (frame, bytes_consumed), or None if data does not yet hold a
            complete frame

        Raises:
            FrameDecodingError: If the frame is malformed
        """
        pos = 0
        while True:
            if data.startswith(b"\n", pos):
                pos += 1
            elif data.startswith(b"\r\n", pos):
                pos += 2
            else:
                break

        lines: List[bytes] = []
        while True:
            eol = data.find(b"\n", pos)
            if eol == -1:
                return None
            line = bytes(data[pos:eol])
            pos = eol + 1
            if line.endswith(b"\r"):
                line = line[:-1]
            if not line:
                break
            lines.append(line)

        try:
            text_lines = [line.decode("utf-8") for line in lines]
        except UnicodeDecodeError as e:
            raise FrameDecodingError(f"Frame head is not valid UTF-8: {e}")

        command = text_lines[0]
        if command not in Commands.ALL:
            raise FrameDecodingError(f"Unknown command: {command!r}")

        escaped = command not in Commands.UNESCAPED
        headers: Dict[str, str] = {}
        for text in text_lines[1:]:
            if ":" not in text:
                raise FrameDecodingError(f"Malformed header line: {text!r}")
            name, value = text.split(":", 1)
            if escaped:
                name, value = unescape_header(name), unescape_header(value)
            # Repeated headers: the first occurrence wins
            headers.setdefault(name, value)

        length = headers.get("content-length")
        if length is not None:
            if not (length.isascii() and length.isdigit()):
                raise FrameDecodingError(f"Invalid content-length: {length!r}")
            end = pos + int(length)
            if len(data) <= end:
                return None
            if data[end] != 0:
                raise FrameDecodingError(
                    f"Frame body does not match content-length {length}"
                )
        else:
            end = data.find(NULL, pos)
            if end == -1:
                return None

        frame = cls(command, headers, bytes(data[pos:end]))
        return frame, end + 1

    def __eq__(self, other) -> bool:
        if not isinstance(other, ProtocolFrame):
            return NotImplemented
        return (
            self.command == other.command
            and self.headers == other.headers
            and self.body == other.body
        )

    def __repr__(self) -> str:
        return f"ProtocolFrame(command={self.command}, headers={self.headers}, body_len={len(self.body)})"


class FrameBuffer:
    """
    Accumulates bytes read from the transport and yields complete frames.

    Bytes of a partially received frame stay in the buffer until the rest
    arrives with a later feed().
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        """Append bytes read from the transport."""
        self._buffer.extend(data)

    def next_frame(self) -> Optional[ProtocolFrame]:
        """
        Remove and return the next complete frame.

        Returns:
            ProtocolFrame, or None if more bytes are needed

        Raises:
            FrameDecodingError: If the buffered stream is malformed
        """
        result = ProtocolFrame.decode(self._buffer)
        if result is None:
            return None
        frame, consumed = result
        del self._buffer[:consumed]
        return frame

    def frames(self) -> List[ProtocolFrame]:
        """Remove and return every complete frame, in stream order."""
        frames = []
        frame = self.next_frame()
        while frame is not None:
            frames.append(frame)
            frame = self.next_frame()
        return frames

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)


class ProtocolHandler:
    """
    Builds the frames a STOMP-Lite client sends.
    """

    def create_connect_frame(self, host: str) -> ProtocolFrame:
        """Create a CONNECT frame offering every supported protocol version."""
        return ProtocolFrame(Commands.CONNECT, {
            "accept-version": ACCEPT_VERSION,
            "host": host,
            "heart-beat": HEART_BEAT,
        })

    def create_send_frame(
        self,
        destination: str,
        body: Union[bytes, str] = b"",
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ProtocolFrame:
        """Create a SEND frame for destination."""
        frame_headers = {"destination": destination}
        if content_type:
            frame_headers["content-type"] = content_type
        if headers:
            for name, value in headers.items():
                frame_headers.setdefault(name, value)
        return ProtocolFrame(Commands.SEND, frame_headers, body)

    def create_subscribe_frame(self, destination: str, subscription_id: str) -> ProtocolFrame:
        """Create a SUBSCRIBE frame with automatic acknowledgment."""
        return ProtocolFrame(Commands.SUBSCRIBE, {
            "destination": destination,
            "id": subscription_id,
            "ack": ACK_MODE,
        })

    def create_disconnect_frame(self) -> ProtocolFrame:
        """Create a DISCONNECT frame."""
        return ProtocolFrame(Commands.DISCONNECT)

    def get_command_name(self, command: str) -> str:
        """Get a printable command name."""
        if command in Commands.ALL:
            return command
        return f"UNKNOWN({command!r})"
