"""
Curses console for the WinHandler bridge.

Shows the session status, traffic counters, the active gamepad and a
scrolling log. 'l' requests a process listing, 'q' or ESC quits.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import time
import queue
import curses
import threading
from collections import deque
from datetime import datetime
from typing import Optional, Deque

from .codec import ProcessInfo
from .session import WinHandler

LOG_HISTORY_SIZE = 2000
UI_REFRESH_MS    = 100


class ConsoleUI:

    COLOR_RED    = 1
    COLOR_GREEN  = 2
    COLOR_YELLOW = 3

    def __init__(self, handler: WinHandler, ui_queue: queue.Queue):
        self.handler = handler
        self.uiq = ui_queue
        self._running = threading.Event()

        self._log: Deque[str] = deque(maxlen=LOG_HISTORY_SIZE)
        self._stats = {
            'rx': '0',
            'tx': '0',
            'errors': '0',
            'kbps': '0.0',
        }

        handler.on_get_process_info = self.post_process_info

    def post_process_info(self, index: int, count: int, info: Optional[ProcessInfo]) -> None:
        """Process-listing callback; runs on network threads, so it only enqueues."""
        try:
            self.uiq.put_nowait(('process', index, count, info))
        except queue.Full:
            pass

    def run(self) -> None:
        curses.wrapper(self._main_loop)

    def stop(self) -> None:
        self._running.clear()

    def _main_loop(self, stdscr) -> None:
        curses.curs_set(0)
        curses.use_default_colors()

        curses.init_pair(self.COLOR_RED, curses.COLOR_RED, -1)
        curses.init_pair(self.COLOR_GREEN, curses.COLOR_GREEN, -1)
        curses.init_pair(self.COLOR_YELLOW, curses.COLOR_YELLOW, -1)

        stdscr.timeout(UI_REFRESH_MS)
        self._running.set()

        last_stats_update = 0.0

        while self._running.is_set():
            self._consume_events()

            now = time.monotonic()
            if now - last_stats_update >= 1.0:
                self._update_stats()
                last_stats_update = now

            self._paint(stdscr)

            ch = stdscr.getch()
            if ch == ord('q') or ch == 27:
                self._running.clear()
            elif ch == ord('l'):
                self.handler.list_processes()

    def _update_stats(self) -> None:
        stats = self.handler.transport.get_stats()
        self._stats['rx'] = str(stats['rx'])
        self._stats['tx'] = str(stats['tx'])
        self._stats['errors'] = str(stats['rx_errors'] + stats['tx_errors'])
        self._stats['kbps'] = stats['kbps']

    def _append_log(self, name: str, msg: str) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        self._log.append(f"[{timestamp}] [{name}] {msg}")

    def _consume_events(self) -> None:
        """Process all pending UI events."""
        while True:
            try:
                event = self.uiq.get_nowait()
            except queue.Empty:
                break

            typ, *rest = event

            if typ == 'log':
                name, msg = rest
                self._append_log(name, msg)

            elif typ == 'process':
                index, count, info = rest
                if info is None:
                    self._append_log('Processes', "Listing failed")
                else:
                    self._append_log('Processes',
                                     f"{index + 1}/{count} pid={info.pid} {info.name} "
                                     f"mem={info.memory_usage // 1024}K mask=0x{info.affinity_mask:X}")

    def _gamepad_text(self) -> str:
        virtual = self.handler.selector.virtual_source()
        if virtual is not None:
            return f"{virtual.display_name()} (virtual)"
        current = self.handler.selector.current
        if current is not None:
            return f"{current.name} (device {current.device_id})"
        return "(none)"

    def _paint(self, stdscr) -> None:
        stdscr.erase()
        h, w = stdscr.getmaxyx()

        session = self.handler.session
        status = session.status_text
        status_attr = curses.color_pair(self.COLOR_GREEN if session.initialized else self.COLOR_YELLOW)
        if not self.handler.transport.is_open:
            status = "NO SOCKET"
            status_attr = curses.color_pair(self.COLOR_RED)

        y = 0
        self._addstr(stdscr, y, 0, f"Session: {status}", w, status_attr)
        y += 1
        header = (
            f"Port: {self.handler.server_port}   "
            f"RX: {self._stats['rx']}   "
            f"TX: {self._stats['tx']}   "
            f"Errors: {self._stats['errors']}   "
            f"kB/s: {self._stats['kbps']}   "
            f"Queued: {len(self.handler.actions)}"
        )
        self._addstr(stdscr, y, 0, header, w)
        y += 1
        self._addstr(stdscr, y, 0,
                     f"Gamepad: {self._gamepad_text()}   "
                     f"Mapper: {self.handler.dinput_mapper_type.name}   "
                     f"Buffered: {len(self.handler.selector.buffer)}", w)
        y += 2

        log_start = y
        log_lines = max(0, (h - 1) - log_start)
        if log_lines > 0 and self._log:
            log_len = len(self._log)
            start_idx = max(0, log_len - log_lines)
            for i, idx in enumerate(range(start_idx, log_len)):
                self._addstr(stdscr, log_start + i, 0, self._log[idx], w)

        self._addstr(stdscr, h - 1, 0, "Press 'l' to list processes, 'q' to quit", w, curses.A_DIM)

        stdscr.noutrefresh()
        curses.doupdate()

    def _addstr(self, stdscr, y: int, x: int, text: str, max_width: int,
                attr: int = curses.A_NORMAL) -> None:
        """Safe addstr that handles boundaries."""
        h, w = stdscr.getmaxyx()
        if y < 0 or y >= h or x >= w:
            return

        available = min(w, max_width) - x - 1
        if available <= 0:
            return

        try:
            stdscr.addstr(y, x, text[:available], attr)
        except curses.error:
            pass
