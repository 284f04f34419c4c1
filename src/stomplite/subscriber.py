"""
Subscribing to STOMP-Lite destinations and receiving their messages.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Iterator, Optional
from .connection import Connection
from .protocol import ACK_MODE, Commands, ProtocolHandler
from .exceptions import NotConnectedError, ProtocolError


class Subscription:
    """
    Interest in one destination, bound to the connection it was made on.

    delivery_count counts the message bodies handed to the caller.
    """

    def __init__(self, connection: Connection, destination: str, subscription_id: str):
        self.connection = connection
        self.destination = destination
        self.id = subscription_id
        self.ack = ACK_MODE
        self.delivery_count = 0

    @property
    def active(self) -> bool:
        """A subscription ends with its connection."""
        return self.connection.connected

    def __repr__(self) -> str:
        return (f"Subscription(id={self.id!r}, destination={self.destination!r}, "
                f"delivered={self.delivery_count}, active={self.active})")


class Subscriber:
    """
    Registers subscriptions on a connection and receives their messages.

    Messages are returned in the order their frames were decoded. A MESSAGE
    frame for another subscription of this subscriber is held back until
    that subscription is read.
    """

    def __init__(self, connection: Connection):
        self.connection = connection
        self.protocol_handler = ProtocolHandler()
        self.subscriptions: Dict[str, Subscription] = {}
        self._pending: Dict[str, Deque[bytes]] = {}
        self._next_id = 1
        self.logger = logging.getLogger(__name__)

    def subscribe(self, destination: str, subscription_id: Optional[str] = None) -> Subscription:
        """
        Subscribe to destination with automatic acknowledgment.

        The broker does not confirm SUBSCRIBE, so this returns as soon as the
        frame is written.

        Args:
            destination: Destination name, e.g. /queue/name
            subscription_id: Subscription id; generated (sub-1, sub-2, ...) if omitted

        Raises:
            NotConnectedError: If the connection is not CONNECTED
            TransportError: If writing to the socket fails
        """
        if not self.connection.connected:
            raise NotConnectedError(
                f"Cannot subscribe to {destination}: connection is {self.connection.state}"
            )

        if subscription_id is None:
            subscription_id = self._generate_id()
        elif subscription_id in self.subscriptions:
            raise ValueError(f"Subscription id {subscription_id!r} is already in use")

        frame = self.protocol_handler.create_subscribe_frame(destination, subscription_id)
        self.connection.send_frame(frame)

        subscription = Subscription(self.connection, destination, subscription_id)
        self.subscriptions[subscription_id] = subscription
        self._pending[subscription_id] = deque()
        self.logger.info(f"Subscribed to {destination} (id={subscription_id})")
        return subscription

    def receive(self, subscription: Subscription, timeout: Optional[float] = None) -> bytes:
        """
        Receive the next message body for subscription.

        Args:
            subscription: A subscription made by this subscriber
            timeout: Seconds to wait; None blocks until a message arrives

        Returns:
            bytes: The MESSAGE frame's body

        Raises:
            NotConnectedError: If the subscription's connection is gone
            TimeoutError: If no message arrived in time
            ConnectionClosedError: If the broker closed the connection
            ProtocolError: On an ERROR frame, an unexpected frame or a
                malformed frame
        """
        if self.subscriptions.get(subscription.id) is not subscription:
            raise ValueError(f"Subscription {subscription.id!r} does not belong to this subscriber")
        if not subscription.active:
            raise NotConnectedError(f"Subscription {subscription.id} is no longer active")

        pending = self._pending[subscription.id]
        if pending:
            return self._deliver(subscription, pending.popleft())

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            frame = self.connection.receive_frame(timeout=remaining)

            if frame.command == Commands.MESSAGE:
                target = frame.headers.get("subscription", subscription.id)
                if target == subscription.id:
                    return self._deliver(subscription, frame.body)
                if target in self._pending:
                    self._pending[target].append(frame.body)
                    continue
                raise ProtocolError(f"MESSAGE for unknown subscription {target!r}", frame=frame)

            if frame.command == Commands.ERROR:
                reason = frame.headers.get("message", "")
                details = frame.body.decode("utf-8", errors="replace")
                self.logger.error(f"Broker sent ERROR: {reason}")
                raise ProtocolError(f"Broker sent ERROR: {reason} {details}".strip(), frame=frame)

            raise ProtocolError(f"Unexpected {frame.command} frame", frame=frame)

    def messages(self, subscription: Subscription, timeout: Optional[float] = None,
                 limit: Optional[int] = None) -> Iterator[bytes]:
        """Yield message bodies for subscription, stopping after limit messages."""
        received = 0
        while limit is None or received < limit:
            yield self.receive(subscription, timeout)
            received += 1

    def _deliver(self, subscription: Subscription, body: bytes) -> bytes:
        subscription.delivery_count += 1
        self.logger.debug(f"Delivered message {subscription.delivery_count} on {subscription.id}")
        return body

    def _generate_id(self) -> str:
        subscription_id = f"sub-{self._next_id}"
        while subscription_id in self.subscriptions:
            self._next_id += 1
            subscription_id = f"sub-{self._next_id}"
        self._next_id += 1
        return subscription_id
