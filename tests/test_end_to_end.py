"""
End-to-end tests: publisher and subscriber talking through the in-process broker.
"""

import pytest
from conftest import FakeBroker
from src.stomplite.connection import ConnectionManager, ConnectionState
from src.stomplite.protocol import Commands
from src.stomplite.publisher import Publisher
from src.stomplite.subscriber import Subscriber
from src.stomplite.exceptions import ConnectionError, HandshakeError


def connect(broker, **kwargs):
    kwargs.setdefault("max_attempts", 1)
    manager = ConnectionManager(sleep=lambda seconds: None)
    return manager.connect("127.0.0.1", broker.port, **kwargs)


class TestEndToEnd:
    """Messages flow from a publisher to a subscriber over real sockets."""

    def test_handshake_details(self, broker):
        with connect(broker) as connection:
            assert connection.state == ConnectionState.CONNECTED
            assert connection.version == "1.2"
            assert connection.server == "FakeMQ/1.0"

            connect_frame = broker.wait_for(Commands.CONNECT)[0]
            assert connect_frame.headers["accept-version"] == "1.0,1.1,1.2"
            assert connect_frame.headers["host"] == "127.0.0.1"

        assert connection.state == ConnectionState.CLOSED
        assert len(broker.wait_for(Commands.DISCONNECT)) == 1

    def test_order_is_preserved_for_every_batch_size(self, broker):
        with connect(broker) as producer, connect(broker) as consumer:
            publisher = Publisher(producer)
            subscriber = Subscriber(consumer)

            for n in range(1, 51):
                destination = f"/queue/order-{n}"
                subscription = subscriber.subscribe(destination)
                for i in range(n):
                    publisher.send(destination, f"{n}:{i}")

                received = list(subscriber.messages(subscription, timeout=5.0, limit=n))

                assert received == [f"{n}:{i}".encode() for i in range(n)]
                assert subscription.delivery_count == n

    def test_binary_payload_with_nul_bytes(self, broker):
        payload = b"\x00bin\x00ary\x00\xff\n\n"
        with connect(broker) as producer, connect(broker) as consumer:
            subscriber = Subscriber(consumer)
            subscription = subscriber.subscribe("/queue/binary")
            Publisher(producer).send("/queue/binary", payload, content_type="application/octet-stream")

            assert subscriber.receive(subscription, timeout=5.0) == payload

    def test_large_payload(self, broker):
        payload = bytes(range(256)) * 4096
        with connect(broker) as producer, connect(broker) as consumer:
            subscriber = Subscriber(consumer)
            subscription = subscriber.subscribe("/queue/large")
            Publisher(producer).send("/queue/large", payload)

            assert subscriber.receive(subscription, timeout=5.0) == payload

    def test_two_subscriptions_on_one_connection(self, broker):
        with connect(broker) as producer, connect(broker) as consumer:
            subscriber = Subscriber(consumer)
            first = subscriber.subscribe("/queue/a")
            second = subscriber.subscribe("/queue/b")
            broker.wait_for(Commands.SUBSCRIBE, 2)

            publisher = Publisher(producer)
            publisher.send("/queue/b", "b1")
            publisher.send("/queue/a", "a1")
            publisher.send("/queue/b", "b2")

            assert subscriber.receive(first, timeout=5.0) == b"a1"
            assert subscriber.receive(second, timeout=5.0) == b"b1"
            assert subscriber.receive(second, timeout=5.0) == b"b2"

    def test_broker_rejects_connect(self):
        broker = FakeBroker(reject=True)
        try:
            with pytest.raises(ConnectionError) as excinfo:
                connect(broker, max_attempts=2, backoff=0)

            assert excinfo.value.attempts == 2
            assert isinstance(excinfo.value.last_cause, HandshakeError)
            assert "Access refused" in str(excinfo.value.last_cause)
            assert len(broker.wait_for(Commands.CONNECT, 2)) == 2
        finally:
            broker.close()
