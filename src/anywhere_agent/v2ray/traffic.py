"""Traffic monitor for the V2Ray access log.

The modification time of the access log is the only activity signal: every
proxied connection appends a line, so an old mtime means an idle endpoint.
"""

import logging
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from anywhere_agent.errors import TrafficCheckError
from anywhere_agent.v2ray.models import TrafficSample

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrafficMonitor:
    """Turns the access log's mtime into an idle/active verdict."""

    def __init__(
        self,
        log_path: Path | str,
        idle_timeout: timedelta,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize monitor.

        Args:
            log_path: Path of the traffic artifact (V2Ray access log)
            idle_timeout: Inactivity after which the service counts as idle
            clock: Source of the current time (timezone-aware)
        """
        self.log_path = Path(log_path)
        self.idle_timeout = idle_timeout
        self._clock = clock

    def sample(self) -> TrafficSample:
        """Stat the access log.

        Returns:
            Fresh TrafficSample; an absent log yields ``has_traffic=False``

        Raises:
            TrafficCheckError: If the log exists but cannot be inspected
        """
        try:
            stat_result = os.stat(self.log_path)
        except FileNotFoundError:
            return TrafficSample(last_active=None, has_traffic=False)
        except OSError as e:
            raise TrafficCheckError(f"failed to stat {self.log_path}: {e}") from e

        last_active = datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)
        logger.debug(f"Access log {self.log_path} last modified at {last_active.isoformat()}")
        return TrafficSample(last_active=last_active, has_traffic=True)

    def is_idle(self) -> bool:
        """Check whether the service has been idle longer than the timeout.

        Returns:
            True if there is no traffic artifact or its last activity is older than the idle timeout

        Raises:
            TrafficCheckError: If the log cannot be inspected
        """
        return self.is_idle_sample(self.sample())

    def is_idle_sample(self, sample: TrafficSample) -> bool:
        """Apply the idle rule to an existing sample."""
        if not sample.has_traffic or sample.last_active is None:
            return True
        return self.idle_for(sample) > self.idle_timeout

    def idle_for(self, sample: TrafficSample) -> timedelta:
        """Time elapsed since the sample's last activity (zero if no activity recorded)."""
        if sample.last_active is None:
            return timedelta(0)
        return self._clock() - sample.last_active
