"""Exception types raised by the WinHandler bridge."""

from __future__ import annotations


class WinHandlerError(Exception):
    """Base class for all bridge errors."""


class ProtocolError(WinHandlerError):
    """An inbound datagram could not be decoded."""


class MessageTooLarge(WinHandlerError, ValueError):
    """An encoded message would not fit in one datagram."""

    def __init__(self, kind: str, size: int, limit: int):
        super().__init__(f"{kind} message is {size} bytes, limit is {limit}")
        self.kind = kind
        self.size = size
        self.limit = limit
