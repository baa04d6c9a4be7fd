"""Cloud provider access: instance identity and termination."""

from .ec2 import CloudClient, EC2Client
from .metadata import InstanceMetadata

__all__ = ["CloudClient", "EC2Client", "InstanceMetadata"]
