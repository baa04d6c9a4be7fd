"""
Periodic checks for the agent.

Runs two independent loops on their own threads:
- idle check: terminate this instance once V2Ray has been idle past the timeout
- traffic sample (optional): log the current traffic sample

EXECUTION MODEL:
- One thread per loop, each waiting on a shared stop event
- A failing tick is logged and skipped; the next tick is the retry
- stop() signals both loops and returns without waiting for in-flight ticks
- A stopped scheduler cannot be restarted; build a new one
"""

import logging
import threading
from collections.abc import Callable
from datetime import timedelta

from anywhere_agent.config import ChecksConfig
from anywhere_agent.v2ray.traffic import TrafficMonitor

logger = logging.getLogger(__name__)


class Scheduler:
    """Owns the idle-check and traffic-sample loops."""

    def __init__(self, checks: ChecksConfig, monitor: TrafficMonitor, on_idle: Callable[[], None]) -> None:
        """
        Initialize scheduler.

        Args:
            checks: Loop intervals and idle timeout
            monitor: Traffic monitor to query
            on_idle: Called from the idle loop when the instance is idle; errors it raises
                abort only that tick
        """
        self.idle_check_interval = checks.idle_check_interval
        self.traffic_sample_interval = checks.traffic_sample_interval
        self.monitor = monitor
        self.on_idle = on_idle

        self._running = False
        self._stopped = False
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        """Whether the loops have been started and not yet stopped."""
        return self._running

    @property
    def sampling_enabled(self) -> bool:
        """Whether the traffic-sample loop is configured."""
        return self.traffic_sample_interval is not None and self.traffic_sample_interval > timedelta(0)

    def start(self) -> bool:
        """
        Start the loops.

        Returns:
            True if the loops were started, False if already running

        Raises:
            RuntimeError: If this scheduler has already been stopped
        """
        with self._state_lock:
            if self._running:
                return False
            if self._stopped:
                raise RuntimeError("Scheduler has been stopped and cannot be restarted")

            self._running = True
            logger.info("Starting scheduler...")

            self._spawn("idle-check", self.idle_check_interval, self.run_idle_check)
            if self.sampling_enabled:
                assert self.traffic_sample_interval is not None
                self._spawn("traffic-sample", self.traffic_sample_interval, self.run_traffic_sample)
            else:
                logger.info("Traffic sampling loop disabled")
            return True

    def stop(self) -> bool:
        """
        Signal both loops to exit at their next wait.

        Does NOT wait for in-flight ticks; call join() for that. A scheduler
        stopped before it was started refuses a later start().

        Returns:
            True if this call stopped the scheduler, False if it was not running
        """
        with self._state_lock:
            self._stopped = True
            self._stop_event.set()
            if not self._running:
                return False

            logger.info("Stopping scheduler...")
            self._running = False
            return True

    def join(self, timeout: float | None = None) -> bool:
        """
        Wait for the loop threads to exit.

        Args:
            timeout: Seconds to wait per thread (None waits forever)

        Returns:
            True if every loop thread has exited
        """
        for thread in list(self._threads):
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._threads)

    def run_idle_check(self) -> bool:
        """
        Run one idle-check tick.

        Returns:
            True if the instance was idle and ``on_idle`` was invoked

        Raises:
            TrafficCheckError: If the traffic artifact cannot be inspected
            Exception: Whatever ``on_idle`` raises
        """
        sample = self.monitor.sample()
        if not self.monitor.is_idle_sample(sample):
            logger.debug(f"Instance active, last traffic {self.monitor.idle_for(sample)} ago")
            return False

        if sample.has_traffic:
            logger.info(f"Instance idle for {self.monitor.idle_for(sample)} (timeout {self.monitor.idle_timeout}), terminating...")
        else:
            logger.info("No traffic recorded, instance is idle, terminating...")
        self.on_idle()
        return True

    def run_traffic_sample(self) -> None:
        """Run one traffic-sample tick."""
        sample = self.monitor.sample()
        if sample.has_traffic and sample.last_active is not None:
            logger.info(f"Traffic sample: last_active={sample.last_active.isoformat()}, idle_for={self.monitor.idle_for(sample)}")
        else:
            logger.info("Traffic sample: no traffic recorded")

    def _spawn(self, name: str, interval: timedelta, tick: Callable[[], object]) -> None:
        thread = threading.Thread(
            target=self._loop,
            args=(name, interval, tick),
            name=f"scheduler-{name}",
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _loop(self, name: str, interval: timedelta, tick: Callable[[], object]) -> None:
        """
        Background loop for one periodic check.

        CRITICAL:
        - This MUST NOT crash on errors
        - Ticks never overlap; each one runs after the previous returns
        """
        seconds = interval.total_seconds()
        logger.info(f"{name} loop started (interval={interval})")

        while not self._stop_event.wait(seconds):
            try:
                tick()
            except Exception as e:
                logger.error(f"{name} check failed, will retry next tick: {e}", exc_info=True)

        logger.info(f"{name} loop stopped")
