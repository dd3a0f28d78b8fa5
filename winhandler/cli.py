"""
``winhandler`` entry point.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import time
import queue
import argparse
from typing import Optional, List

from .config import read_settings, acquire_instance_lock, release_instance_lock
from .log import configure_logging, log_event
from .session import WinHandler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="WinHandler host bridge")
    parser.add_argument("--config", default=None, help="Settings file (default: ./settings.ini)")
    parser.add_argument("--headless", action="store_true", help="Run without the curses console")
    return parser


def run_headless() -> None:
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        print("\nInterrupted by user")


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = read_settings(args.config)

    configure_logging(settings.log_path if settings.log_enabled else None,
                      stdout=settings.log_stdout or args.headless)

    lock = acquire_instance_lock(settings.server_port)
    try:
        ui_queue: Optional[queue.Queue] = None if args.headless else queue.Queue(maxsize=1000)
        handler = WinHandler(settings, ui_queue=ui_queue)

        print("WinHandler host bridge")
        print(f"Server port: {settings.server_port}, peer: {settings.host}:{settings.client_port}")
        print(f"Mapper type: {settings.mapper_type.name}")
        print("Starting...")

        handler.start()
        try:
            if args.headless:
                run_headless()
            else:
                from .console import ConsoleUI
                ConsoleUI(handler, ui_queue).run()
        finally:
            log_event(ui_queue, 'System', 'Shutting down...')
            handler.stop()

        print("Goodbye!")
    finally:
        release_instance_lock(lock)


if __name__ == "__main__":
    main()
