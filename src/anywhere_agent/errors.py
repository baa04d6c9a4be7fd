"""
Custom exception classes for agent operations.

This module defines the exception hierarchy used throughout the agent
for consistent error handling and reporting.
"""


class AgentError(Exception):
    """Base exception for anywhere-agent errors."""

    pass


class ConfigError(AgentError):
    """Configuration file missing or invalid."""

    pass


class TrafficCheckError(AgentError):
    """Traffic artifact could not be inspected (absence is not an error)."""

    pass


class ProcessProbeError(AgentError):
    """Process table inspection failed."""

    pass


class DeploymentError(AgentError):
    """Unrecoverable failure inside a deployment attempt."""

    pass


class ProviderError(AgentError):
    """Cloud provider API call failed."""

    pass


class MetadataError(ProviderError):
    """Instance identity or placement could not be resolved."""

    pass


class AgentStartupError(AgentError):
    """Agent cannot be constructed; continued operation is meaningless."""

    pass
