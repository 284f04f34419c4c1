"""
STOMP-Lite producer and consumer commands.

The producer connects (retrying while the broker starts up), sends a batch of
text messages one second apart and disconnects. The consumer subscribes to
the same destination and prints messages until it has received the batch.
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from typing import Callable, List, Optional
from .config import ClientConfig
from .connection import ConnectionManager
from .publisher import Publisher
from .session import SessionRecorder
from .subscriber import Subscriber
from .exceptions import StompLiteError
from ..utils.logging import configure_debug_logging, setup_logger, silence_external_loggers


logger = logging.getLogger(__name__)

SEND_INTERVAL = 1.0


def generate_message_id(index: int, now: Optional[datetime] = None) -> str:
    """Build a message id such as MSG_20240101_120000_INDEX_3."""
    now = now or datetime.now()
    return f"MSG_{now.strftime('%Y%m%d_%H%M%S')}_INDEX_{index}"


def build_parser(description: str, config: ClientConfig) -> argparse.ArgumentParser:
    """Create the argument parser shared by both commands."""
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--host", default=config.host, help="Broker hostname or IP address")
    parser.add_argument("--port", type=int, default=config.port, help="Broker STOMP port")
    parser.add_argument("--destination", default=config.destination, help="Queue or topic name")
    parser.add_argument("--count", type=int, default=config.message_count,
                        help="Number of messages to send or receive")
    parser.add_argument("--max-attempts", type=int, default=config.max_attempts,
                        help="Connection attempts before giving up")
    parser.add_argument("--backoff", type=float, default=config.backoff,
                        help="Seconds between connection attempts")
    parser.add_argument("--connect-timeout", type=float, default=config.connect_timeout,
                        help="Connect and handshake timeout in seconds")
    parser.add_argument("--receive-timeout", type=float, default=config.receive_timeout,
                        help="Seconds to wait for each message")
    parser.add_argument("--record", action="store_true", help="Enable session recording")
    parser.add_argument("--sessions-dir", default="sessions", help="Directory for recorded sessions")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> ClientConfig:
    return ClientConfig(
        host=args.host,
        port=args.port,
        destination=args.destination,
        max_attempts=args.max_attempts,
        backoff=args.backoff,
        connect_timeout=args.connect_timeout,
        receive_timeout=args.receive_timeout,
        message_count=args.count,
    )


def _connect(config: ClientConfig, manager: ConnectionManager):
    return manager.connect(
        config.host,
        config.port,
        max_attempts=config.max_attempts,
        backoff=config.backoff,
        connect_timeout=config.connect_timeout,
    )


def run_producer(config: ClientConfig, manager: ConnectionManager,
                 interval: float = SEND_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep) -> int:
    """
    Send config.message_count messages to config.destination.

    Returns:
        int: Number of messages sent
    """
    with _connect(config, manager) as connection:
        publisher = Publisher(connection)
        count = config.message_count
        logger.info(f"Sending {count} messages to {config.destination}")

        for index in range(1, count + 1):
            message = f"Hello from Python Producer - {generate_message_id(index)}"
            logger.info(f"Sending message {index}/{count}: {message}")
            publisher.send(config.destination, message)
            if index < count:
                sleep(interval)

        logger.info("All messages sent. Disconnecting...")
        return publisher.sent_count


def run_consumer(config: ClientConfig, manager: ConnectionManager) -> List[str]:
    """
    Receive config.message_count messages from config.destination.

    Returns:
        List of message bodies decoded as text
    """
    with _connect(config, manager) as connection:
        subscriber = Subscriber(connection)
        subscription = subscriber.subscribe(config.destination)
        count = config.message_count
        logger.info(f"Waiting for {count} messages from {config.destination}")

        received = []
        for body in subscriber.messages(subscription, timeout=config.receive_timeout, limit=count):
            text = body.decode("utf-8", errors="replace")
            received.append(text)
            logger.info(f"Received message {subscription.delivery_count}/{count}: {text}")

        logger.info(f"All {count} messages received")
        return received


def _main(argv: Optional[List[str]], description: str, runner) -> int:
    try:
        config = ClientConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    args = build_parser(description, config).parse_args(argv)
    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logger("src.stomplite")
    silence_external_loggers()
    if args.verbose:
        configure_debug_logging()

    recorder = SessionRecorder() if args.record else None
    manager = ConnectionManager(recorder=recorder)

    try:
        result = runner(config, manager)
        count = len(result) if isinstance(result, list) else result
        print(f"{description} completed successfully ({count} messages)")
        return 0
    except KeyboardInterrupt:
        print("\nAborted by user")
        return 1
    except StompLiteError as e:
        logger.error(f"{description} failed: {e}")
        return 1
    finally:
        if recorder:
            session_file = recorder.save_session(args.sessions_dir)
            logger.info(f"Session saved to: {session_file}")
            logger.info(f"Session summary: {recorder.get_session_summary()}")


def producer_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the stomplite-produce command."""
    return _main(argv, "STOMP-Lite Producer", run_producer)


def consumer_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the stomplite-consume command."""
    return _main(argv, "STOMP-Lite Consumer", run_consumer)


if __name__ == "__main__":
    sys.exit(producer_main())
