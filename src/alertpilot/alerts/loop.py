"""Background loop that drives the rules engine on a fixed tick."""
from __future__ import annotations

import logging
import threading

import schedule

from ..models import Alert
from .rules import RulesEngine

logger = logging.getLogger(__name__)

# Seconds between run_pending() polls
_POLL_INTERVAL = 1.0


class EvaluationLoop:
    """Run ``RulesEngine.tick`` every *interval_seconds* in a daemon thread.

    The loop owns a private ``schedule.Scheduler`` rather than the module
    default, so several loops (or tests) never share jobs.  The first tick
    runs as soon as the thread starts.
    """

    def __init__(self, engine: RulesEngine, interval_seconds: float = 60.0) -> None:
        self.engine = engine
        self.interval = interval_seconds
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start background evaluation."""
        if self.running and not self._stop.is_set():
            return
        if self._thread is not None:
            # a stopped loop may still be finishing its last tick
            self._thread.join()
            self._thread = None
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval).seconds.do(self.run_once)

        self._thread = threading.Thread(target=self._run_loop, name="alertpilot-eval", daemon=True)
        self._thread.start()
        logger.info("Evaluation loop started (every %ss)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop background evaluation; an in-progress tick is allowed to finish."""
        self._stop.set()
        self._scheduler.clear()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Evaluation loop still finishing a tick after %ss", timeout)
                return
            self._thread = None
        logger.info("Evaluation loop stopped")

    def run_once(self) -> list[Alert]:
        """Run a single tick; failures are logged, never raised."""
        try:
            alerts = self.engine.tick()
        except Exception as exc:
            self._consecutive_failures += 1
            logger.error("Tick failed (%d consecutive): %s", self._consecutive_failures, exc)
            return []
        self._consecutive_failures = 0
        return alerts

    def _run_loop(self) -> None:
        self.run_once()
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(_POLL_INTERVAL)
