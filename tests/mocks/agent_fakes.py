"""
Fakes for agent collaborators.

These stand in for the EC2 client, the uvicorn-backed API server and the
deployer so lifecycle tests run without network, root or a real V2Ray.
"""

import threading
from datetime import timedelta
from typing import Any

from anywhere_agent.config import AgentConfig, ApiConfig, ChecksConfig, LogConfig, V2RayConfig
from anywhere_agent.v2ray.models import DeploymentStatus


def make_config(
    access_log: str = "/tmp/v2ray-access.log",
    idle_check_interval: timedelta = timedelta(minutes=5),
    idle_timeout: timedelta = timedelta(minutes=30),
    traffic_sample_interval: timedelta | None = None,
    **v2ray_overrides: Any,
) -> AgentConfig:
    """Build a valid AgentConfig for tests."""
    v2ray_fields: dict[str, Any] = {
        "port": 10086,
        "uuid": "b831381d-6324-4d53-ad4f-8cda48b30811",
        "access_log": access_log,
    }
    v2ray_fields.update(v2ray_overrides)
    return AgentConfig(
        v2ray=V2RayConfig(**v2ray_fields),
        api=ApiConfig(address="127.0.0.1", port=8080, jwt_secret="test-secret", shutdown_timeout=timedelta(seconds=1)),
        checks=ChecksConfig(
            idle_check_interval=idle_check_interval,
            idle_timeout=idle_timeout,
            traffic_sample_interval=traffic_sample_interval,
        ),
        log=LogConfig(level="debug", max_size=10, max_backups=3, max_age=7),
    )


class FakeCloudClient:
    """Records terminate calls; optionally blocks inside terminate."""

    def __init__(self, instance_id: str = "i-0123456789abcdef0", error: Exception | None = None) -> None:
        self.instance_id = instance_id
        self.error = error
        self.terminated: list[str] = []
        self.entered = threading.Event()
        self.release = threading.Event()
        self.release.set()

    def current_instance_id(self) -> str:
        return self.instance_id

    def terminate(self, instance_id: str) -> None:
        self.entered.set()
        self.release.wait(5)
        if self.error is not None:
            raise self.error
        self.terminated.append(instance_id)


class FakeApiServer:
    """Blocks in serve() until stop() is called."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.stopped = threading.Event()
        self.stop_calls = 0

    def serve(self) -> None:
        self.started.set()
        self.stopped.wait(10)

    def stop(self) -> None:
        self.stop_calls += 1
        self.stopped.set()


class FakeDeployer:
    """Returns a fixed status; with ``block=True`` waits for the cancel event first."""

    def __init__(self, status: DeploymentStatus | None = None, block: bool = False) -> None:
        self.status = status or DeploymentStatus(installed=True, running=True, version="V2Ray 5.16.1", progress=100, message="V2Ray already installed")
        self.block = block
        self.calls: list[tuple[int, str, str]] = []

    def deploy(
        self,
        port: int,
        identity_secret: str,
        access_log_path: str,
        cancel: threading.Event | None = None,
    ) -> DeploymentStatus:
        self.calls.append((port, identity_secret, access_log_path))
        if self.block and cancel is not None:
            cancel.wait(10)
            return DeploymentStatus(progress=20, message="Installation canceled")
        return self.status
