"""Single-slot handoff of deployment status to observers.

The producer never blocks: offering into an occupied slot evicts the unread
value, so a reader always sees the latest status and never a backlog.
"""

import logging
import queue

from anywhere_agent.v2ray.models import DeploymentStatus

logger = logging.getLogger(__name__)


class StatusConduit:
    """Capacity-1, latest-value-wins status channel."""

    def __init__(self) -> None:
        """Initialize an empty conduit."""
        self._slot: queue.Queue[DeploymentStatus] = queue.Queue(maxsize=1)

    def offer(self, status: DeploymentStatus) -> bool:
        """Deliver a status without blocking.

        Args:
            status: Status to deliver

        Returns:
            True if the slot was empty, False if an unread status was superseded
        """
        superseded = False
        while True:
            try:
                self._slot.put_nowait(status)
                break
            except queue.Full:
                try:
                    self._slot.get_nowait()
                    superseded = True
                except queue.Empty:
                    pass

        if superseded:
            logger.debug("Unread deployment status superseded by a newer one")
        return not superseded

    def poll(self) -> DeploymentStatus | None:
        """Take the pending status, if any, without blocking."""
        try:
            return self._slot.get_nowait()
        except queue.Empty:
            return None

    def receive(self, timeout: float | None = None) -> DeploymentStatus | None:
        """Wait up to ``timeout`` seconds for a status.

        Returns:
            The status, or None if nothing arrived in time
        """
        try:
            return self._slot.get(timeout=timeout)
        except queue.Empty:
            return None
