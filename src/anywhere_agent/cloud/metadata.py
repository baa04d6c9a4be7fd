"""EC2 instance metadata (IMDSv2) lookups.

Every lookup fetches a session token with PUT and then reads the metadata
path with that token. ``EC2_INSTANCE_ID`` and ``AWS_REGION`` override the
lookups when set.
"""

import logging
import os

import httpx

from anywhere_agent.errors import MetadataError

logger = logging.getLogger(__name__)

METADATA_BASE_URL = "http://169.254.169.254/latest"
TOKEN_TTL_SECONDS = 21600
REQUEST_TIMEOUT = 2.0


class InstanceMetadata:
    """Client for the EC2 instance metadata service."""

    def __init__(self, base_url: str = METADATA_BASE_URL, client: httpx.Client | None = None) -> None:
        """Initialize metadata client.

        Args:
            base_url: Metadata service base URL
            client: HTTP client to use (created with a short timeout if None)
        """
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=REQUEST_TIMEOUT)

    def get_token(self) -> str:
        """Fetch an IMDSv2 session token.

        Raises:
            MetadataError: If the token cannot be fetched
        """
        try:
            response = self.client.put(
                f"{self.base_url}/api/token",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
            )
        except httpx.HTTPError as e:
            raise MetadataError(f"failed to get metadata token: {e}") from e

        if response.status_code != 200:
            raise MetadataError(f"failed to get metadata token, status code: {response.status_code}")

        token = response.text.strip()
        if not token:
            raise MetadataError("empty token returned")
        return token

    def get(self, path: str) -> str:
        """Read one metadata path (e.g. ``instance-id``).

        Raises:
            MetadataError: If the value cannot be read or is empty
        """
        token = self.get_token()
        url = f"{self.base_url}/meta-data/{path}"
        try:
            response = self.client.get(url, headers={"X-aws-ec2-metadata-token": token})
        except httpx.HTTPError as e:
            raise MetadataError(f"failed to get metadata {path}: {e}") from e

        if response.status_code != 200:
            raise MetadataError(f"failed to get metadata {path}, status code: {response.status_code}")

        value = response.text.strip()
        if not value:
            raise MetadataError(f"empty {path} returned")
        logger.debug(f"Metadata {path} = {value}")
        return value

    def get_instance_id(self) -> str:
        """Return this instance's id (``EC2_INSTANCE_ID`` wins if set)."""
        instance_id = os.environ.get("EC2_INSTANCE_ID", "")
        if instance_id:
            return instance_id
        return self.get("instance-id")

    def get_region(self) -> str:
        """Return this instance's region (``AWS_REGION`` wins if set)."""
        region = os.environ.get("AWS_REGION", "")
        if region:
            return region
        return self.get("placement/region")

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()
