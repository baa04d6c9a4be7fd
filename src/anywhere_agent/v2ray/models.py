"""Data models for the monitored V2Ray service.

This module defines the values exchanged between the traffic monitor, the
deployment controller, the scheduler and the API surface.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class DeployStage(Enum):
    """Stages of one deployment attempt, strictly forward."""

    NOT_STARTED = "not_started"
    CHECKING_INSTALLED = "checking_installed"
    INSTALLING = "installing"
    CONFIGURING = "configuring"
    STARTING = "starting"
    ENABLING_AUTOSTART = "enabling_autostart"
    VERIFYING = "verifying"
    DONE = "done"


@dataclass(frozen=True)
class TrafficSample:
    """One observation of the traffic artifact.

    Attributes:
        last_active: Modification time of the access log (None if absent)
        has_traffic: Whether the access log exists
    """

    last_active: datetime | None
    has_traffic: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert sample to dictionary for JSON serialization."""
        return {
            "last_active": self.last_active.isoformat() if self.last_active else None,
            "has_traffic": self.has_traffic,
        }


@dataclass
class DeploymentStatus:
    """Snapshot of a deployment attempt or of the live service.

    Attributes:
        installed: Whether the service is installed
        running: Whether the service is running
        version: Version string reported by the service binary
        progress: Attempt progress, 0..100
        message: Human readable outcome or failure reason
    """

    installed: bool = False
    running: bool = False
    version: str = ""
    progress: int = 0
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert status to dictionary for JSON serialization."""
        return {
            "installed": self.installed,
            "running": self.running,
            "version": self.version,
            "progress": self.progress,
            "message": self.message,
        }
