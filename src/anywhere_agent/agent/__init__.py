"""Lifecycle coordination: status conduit, periodic checks and the agent itself.

The composition root lives in ``anywhere_agent.agent.agent``.
"""

from .conduit import StatusConduit
from .scheduler import Scheduler

__all__ = ["Scheduler", "StatusConduit"]
