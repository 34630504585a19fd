"""Countdown timer driving in-progress test sessions."""
from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 1.0


def format_time(seconds: int | None) -> str:
    """Render remaining time as ``HH:MM:SS`` (or ``MM:SS`` under an hour)."""
    if seconds is None:
        return "--:--"
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class SessionTimer:
    """
    Calls ``on_tick`` once per interval on a daemon thread.

    The loop stops when ``cancel()`` is called or when ``on_tick`` returns
    False (the session left the in-progress phase or ran out of time).
    """

    def __init__(
        self,
        on_tick: Callable[[], bool],
        interval: float = TICK_INTERVAL_SECONDS,
        name: str = "session_timer",
    ) -> None:
        self._on_tick = on_tick
        self._interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                keep_going = self._on_tick()
            except Exception:
                logger.exception("Timer tick failed; stopping %s", self._thread.name)
                return
            if not keep_going:
                return
