"""
AWS EC2 client.

Resolves the identity of the instance the agent runs on and terminates it.
"""

import logging
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from anywhere_agent.cloud.metadata import InstanceMetadata
from anywhere_agent.errors import AgentStartupError, MetadataError, ProviderError

logger = logging.getLogger(__name__)


class CloudClient(Protocol):
    """What the agent needs from a cloud provider."""

    def current_instance_id(self) -> str:
        """Return this node's instance id."""
        ...

    def terminate(self, instance_id: str) -> None:
        """Terminate the given instance."""
        ...


class EC2Client:
    """EC2 API client for self-termination."""

    def __init__(self, region: str, metadata: InstanceMetadata | None = None, ec2: Any = None) -> None:
        """
        Initialize EC2 client.

        Args:
            region: AWS region of this instance
            metadata: Instance metadata client (created if None)
            ec2: boto3 EC2 client (created for ``region`` if None; credentials come from the instance role)
        """
        self.region = region
        self.metadata = metadata or InstanceMetadata()
        self.ec2 = ec2 if ec2 is not None else boto3.client("ec2", region_name=region)
        logger.info(f"EC2 client initialized for region {region}")

    @classmethod
    def from_instance_metadata(cls, metadata: InstanceMetadata | None = None) -> "EC2Client":
        """Build a client for the region this instance runs in.

        Raises:
            AgentStartupError: If the region cannot be resolved or the client cannot be built
        """
        metadata = metadata or InstanceMetadata()
        try:
            region = metadata.get_region()
        except MetadataError as e:
            raise AgentStartupError(f"failed to get region: {e}") from e

        try:
            return cls(region, metadata=metadata)
        except (BotoCoreError, ClientError) as e:
            raise AgentStartupError(f"failed to load aws config: {e}") from e

    def current_instance_id(self) -> str:
        """Return this instance's id.

        Raises:
            MetadataError: If the id cannot be resolved
        """
        return self.metadata.get_instance_id()

    def terminate(self, instance_id: str) -> None:
        """Terminate an instance.

        Args:
            instance_id: Instance to terminate

        Raises:
            ProviderError: If the EC2 API call fails
        """
        logger.info(f"Terminating instance {instance_id}...")
        try:
            response = self.ec2.terminate_instances(InstanceIds=[instance_id])
        except (BotoCoreError, ClientError) as e:
            raise ProviderError(f"failed to terminate instance {instance_id}: {e}") from e

        for change in response.get("TerminatingInstances", []):
            previous = change.get("PreviousState", {}).get("Name")
            current = change.get("CurrentState", {}).get("Name")
            logger.info(f"Instance {change.get('InstanceId')} state: {previous} -> {current}")
