#!/usr/bin/env python3
"""
WinHandler companion peer.

Stands in for the companion process that runs inside the sandbox: binds
the client port, greets the host with INIT and prints every datagram it
receives. Used interactively as a debug tool and by the test suite.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import os
import socket
import argparse
from datetime import datetime
from typing import Optional, Type, TypeVar

from .codec import (
    MAX_DATAGRAM_SIZE, Init, ListProcesses, ProcessInfo, ProcessReport,
    encode_message, decode_message,
)
from .config import DEFAULT_CLIENT_PORT, DEFAULT_SERVER_PORT
from .errors import ProtocolError

# Read more than one datagram's worth so oversize sends are visible
PEER_RECV_SIZE = 1024

M = TypeVar("M")


class CompanionPeer:
    """A UDP endpoint speaking the companion side of the protocol."""

    def __init__(self, server_port: int = DEFAULT_SERVER_PORT, port: int = 0,
                 host: str = "127.0.0.1"):
        self.host = host
        self.server_port = server_port
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind((host, port))

    @property
    def port(self) -> int:
        return self.sock.getsockname()[1]

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass

    def __enter__(self) -> "CompanionPeer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send(self, message) -> None:
        self.send_raw(encode_message(message))

    def send_raw(self, data: bytes) -> None:
        self.sock.sendto(data, (self.host, self.server_port))

    def send_init(self) -> None:
        self.send(Init())

    def receive_raw(self, timeout: float = 1.0) -> Optional[bytes]:
        self.sock.settimeout(timeout)
        try:
            data, _ = self.sock.recvfrom(PEER_RECV_SIZE)
        except socket.timeout:
            return None
        return data

    def receive(self, timeout: float = 1.0):
        """Next decoded message, or None on timeout."""
        data = self.receive_raw(timeout)
        if data is None:
            return None
        return decode_message(data)

    def expect(self, kind: Type[M], timeout: float = 1.0) -> M:
        message = self.receive(timeout)
        if not isinstance(message, kind):
            raise AssertionError(f"expected {kind.__name__}, got {message!r}")
        return message

# ══════════════════════════════════════════════════════════════════════════════
# CONSOLE TOOL
# ══════════════════════════════════════════════════════════════════════════════


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def serve(peer: CompanionPeer, log_file: Optional[str] = None) -> None:
    """Print incoming traffic forever; answer LIST_PROCESSES with ourselves."""

    def log_write(line: str) -> None:
        print(line)
        if log_file:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    peer.send_init()
    log_write(f"[{_ts()}] INIT sent to port {peer.server_port}, listening on {peer.port}")

    while True:
        data = peer.receive_raw(timeout=1.0)
        if data is None:
            continue
        if len(data) > MAX_DATAGRAM_SIZE:
            log_write(f"[{_ts()}] [WARN] oversize datagram ({len(data)} bytes)")
        try:
            message = decode_message(data)
        except ProtocolError as e:
            log_write(f"[{_ts()}] [ERROR] {e}: {data.hex()}")
            continue

        log_write(f"[{_ts()}] {message!r}")

        if isinstance(message, ListProcesses):
            me = ProcessInfo(os.getpid(), "winhandler-peer", 0, 1)
            peer.send(ProcessReport(0, 1, me))


def main() -> None:
    parser = argparse.ArgumentParser(description="WinHandler companion peer (debug tool)")
    parser.add_argument("--port", type=int, default=DEFAULT_CLIENT_PORT, help="Port to listen on")
    parser.add_argument("--server-port", type=int, default=DEFAULT_SERVER_PORT, help="Host's listener port")
    parser.add_argument("--host", default="127.0.0.1", help="Host address")
    parser.add_argument("--log", default=None, help="Also append output to this file")
    args = parser.parse_args()

    with CompanionPeer(args.server_port, args.port, args.host) as peer:
        try:
            serve(peer, args.log)
        except KeyboardInterrupt:
            print("\nInterrupted by user")


if __name__ == "__main__":
    main()
