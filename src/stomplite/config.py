"""
Client configuration.

Defaults match the reference deployment (an ActiveMQ service named
"activemq" exposing STOMP on 61613). Each value can be overridden with a
STOMP_* environment variable, and the command line overrides both.
"""

import os
from typing import Mapping, Optional
from .connection import DEFAULT_BACKOFF, DEFAULT_CONNECT_TIMEOUT, DEFAULT_MAX_ATTEMPTS


DEFAULT_HOST = "activemq"
DEFAULT_PORT = 61613
DEFAULT_DESTINATION = "/queue/ProjectQueue"
DEFAULT_MESSAGE_COUNT = 10
DEFAULT_RECEIVE_TIMEOUT = 30.0


class ClientConfig:
    """Settings shared by the producer and consumer commands."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        destination: str = DEFAULT_DESTINATION,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff: float = DEFAULT_BACKOFF,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        receive_timeout: Optional[float] = DEFAULT_RECEIVE_TIMEOUT,
        message_count: int = DEFAULT_MESSAGE_COUNT,
    ):
        self.host = host
        self.port = port
        self.destination = destination
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.connect_timeout = connect_timeout
        self.receive_timeout = receive_timeout
        self.message_count = message_count

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build a configuration from STOMP_* environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        config = cls()

        config.host = env.get("STOMP_HOST", config.host)
        config.destination = env.get("STOMP_DESTINATION", config.destination)
        config.port = _parse(env, "STOMP_PORT", int, config.port)
        config.max_attempts = _parse(env, "STOMP_MAX_ATTEMPTS", int, config.max_attempts)
        config.backoff = _parse(env, "STOMP_BACKOFF", float, config.backoff)
        config.connect_timeout = _parse(env, "STOMP_CONNECT_TIMEOUT", float, config.connect_timeout)
        config.receive_timeout = _parse(env, "STOMP_RECEIVE_TIMEOUT", float, config.receive_timeout)
        config.message_count = _parse(env, "STOMP_MESSAGE_COUNT", int, config.message_count)
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check that the values can be used to connect.

        Raises:
            ValueError: Naming the first invalid setting
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got: {self.port}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {self.max_attempts}")
        if self.backoff < 0:
            raise ValueError(f"backoff must not be negative, got: {self.backoff}")
        if self.message_count < 0:
            raise ValueError(f"message_count must not be negative, got: {self.message_count}")
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got: {self.connect_timeout}")
        if self.receive_timeout is not None and self.receive_timeout <= 0:
            raise ValueError(f"receive_timeout must be positive, got: {self.receive_timeout}")

    def __repr__(self) -> str:
        return (f"ClientConfig(host={self.host!r}, port={self.port}, "
                f"destination={self.destination!r}, max_attempts={self.max_attempts})")


def _parse(env: Mapping[str, str], name: str, convert, default):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ValueError(f"{name} must be a valid {convert.__name__}, got: {raw!r}")
