"""
STOMP-Lite Client

A minimal client for the STOMP text frame protocol: frame encoding and
decoding, connection management with retries, publishing and subscribing,
plus session recording and a terminal replay viewer.
"""

__version__ = "1.0.0"
__description__ = "Minimal STOMP messaging client with producer/consumer tools"
