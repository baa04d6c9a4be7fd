"""
Mock utilities for testing.

This package provides fakes for the agent's collaborators (cloud provider,
API server) and a helper for building configurations in tests.
"""

from .agent_fakes import (
    FakeApiServer,
    FakeCloudClient,
    FakeDeployer,
    make_config,
)

__all__ = [
    "FakeApiServer",
    "FakeCloudClient",
    "FakeDeployer",
    "make_config",
]
