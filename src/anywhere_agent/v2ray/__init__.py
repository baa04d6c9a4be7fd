"""V2Ray deployment, inspection and traffic monitoring."""

from .deploy import Deployer
from .models import DeploymentStatus, DeployStage, TrafficSample
from .traffic import TrafficMonitor

__all__ = ["Deployer", "DeploymentStatus", "DeployStage", "TrafficMonitor", "TrafficSample"]
