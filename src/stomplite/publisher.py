"""
Publishing messages to STOMP-Lite destinations.
"""

import logging
from typing import Dict, Optional, Union
from .connection import Connection
from .protocol import ProtocolHandler
from .exceptions import NotConnectedError


TEXT_CONTENT_TYPE = "text/plain"


class Publisher:
    """
    Sends messages over an established connection.

    Delivery is fire-and-forget: send() returns once the frame has been
    written to the socket.
    """

    def __init__(self, connection: Connection):
        self.connection = connection
        self.protocol_handler = ProtocolHandler()
        self.sent_count = 0
        self.logger = logging.getLogger(__name__)

    def send(
        self,
        destination: str,
        payload: Union[bytes, str],
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Send payload to destination.

        Args:
            destination: Destination name, e.g. /queue/name
            payload: Message body; str payloads are sent as UTF-8 text/plain
            content_type: Explicit content-type header
            headers: Extra headers for the SEND frame

        Raises:
            NotConnectedError: If the connection is not CONNECTED
            TransportError: If writing to the socket fails
        """
        if not self.connection.connected:
            raise NotConnectedError(
                f"Cannot send to {destination}: connection is {self.connection.state}"
            )

        if isinstance(payload, str):
            payload = payload.encode("utf-8")
            content_type = content_type or TEXT_CONTENT_TYPE

        frame = self.protocol_handler.create_send_frame(
            destination, payload, content_type=content_type, headers=headers
        )
        self.connection.send_frame(frame)
        self.sent_count += 1
        self.logger.debug(f"Published {len(payload)} bytes to {destination}")
