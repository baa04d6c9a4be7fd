"""FastAPI control API for the agent.

Endpoints:
- GET /health: unauthenticated liveness probe
- GET /api/status: live V2Ray status, last deployment status, config and traffic (Bearer JWT)
"""

import logging
from collections.abc import Callable
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from anywhere_agent import __version__
from anywhere_agent.agent.conduit import StatusConduit
from anywhere_agent.api.auth import TokenClaims, require_auth
from anywhere_agent.config import AgentConfig
from anywhere_agent.errors import AgentError
from anywhere_agent.v2ray import service
from anywhere_agent.v2ray.models import DeploymentStatus
from anywhere_agent.v2ray.traffic import TrafficMonitor

logger = logging.getLogger(__name__)

SERVICE_NAME = "anywhere-agent"


class LastKnownDeployment:
    """Remembers the newest status taken from the conduit."""

    def __init__(self, conduit: StatusConduit) -> None:
        self.conduit = conduit
        self._latest: DeploymentStatus | None = None

    def get(self) -> DeploymentStatus | None:
        """Drain the conduit (if anything is pending) and return the newest status seen."""
        fresh = self.conduit.poll()
        if fresh is not None:
            self._latest = fresh
        return self._latest


def create_app(
    config: AgentConfig,
    conduit: StatusConduit,
    monitor: TrafficMonitor,
    status_probe: Callable[[], DeploymentStatus] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Agent configuration (secrets, reported config values)
        conduit: Deployment status conduit
        monitor: Traffic monitor for the current sample
        status_probe: Live V2Ray status probe (defaults to the service manager probe)

    Returns:
        Configured FastAPI app
    """
    if status_probe is None:
        service_name = config.v2ray.service_name

        def status_probe() -> DeploymentStatus:
            return service.get_service_status(service_name)

    deployments = LastKnownDeployment(conduit)

    app = FastAPI(
        title="Anywhere Agent API",
        description="Status API for a self-terminating V2Ray node",
        version=__version__,
    )
    app.state.jwt_secret = config.api.jwt_secret

    @app.get("/health")
    def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/api/status", response_model=None)
    def get_status(claims: TokenClaims = Depends(require_auth)) -> dict[str, Any] | JSONResponse:
        """Return live status and configuration of the V2Ray node."""
        logger.debug(f"Status requested by {claims.user_id}")
        try:
            live = status_probe()
        except AgentError as e:
            logger.error(f"Failed to get v2ray status: {e}")
            return JSONResponse(status_code=502, content={"error": f"Failed to get v2ray status: {e}"})

        deployment = deployments.get()

        traffic: dict[str, Any] | None
        try:
            traffic = monitor.sample().to_dict()
        except AgentError as e:
            logger.warning(f"Failed to sample traffic for status request: {e}")
            traffic = None

        return {
            "status": live.to_dict(),
            "deployment": deployment.to_dict() if deployment else None,
            "traffic": traffic,
            "config": {
                "port": config.v2ray.port,
                "uuid": config.v2ray.uuid,
                "access_log": config.v2ray.access_log,
            },
        }

    return app


class ApiServer:
    """Runs the control API under uvicorn with bounded graceful shutdown."""

    def __init__(
        self,
        config: AgentConfig,
        conduit: StatusConduit,
        monitor: TrafficMonitor,
        status_probe: Callable[[], DeploymentStatus] | None = None,
    ) -> None:
        """Initialize API server.

        Args:
            config: Agent configuration (bind address, port, shutdown grace period)
            conduit: Deployment status conduit
            monitor: Traffic monitor
            status_probe: Live V2Ray status probe override
        """
        self.host = config.api.address
        self.port = config.api.port
        self.shutdown_timeout = config.api.shutdown_timeout
        self.app = create_app(config, conduit, monitor, status_probe)
        self.server: uvicorn.Server | None = None
        self._stop_requested = False

    def serve(self) -> None:
        """Serve until stop() is called. Blocks the calling thread."""
        uvicorn_config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_config=None,
            timeout_graceful_shutdown=max(1, int(self.shutdown_timeout.total_seconds())),
        )
        self.server = uvicorn.Server(uvicorn_config)
        if self._stop_requested:
            self.server.should_exit = True

        logger.info(f"API server starting on http://{self.host}:{self.port}")
        self.server.run()
        logger.info("API server stopped")

    def stop(self) -> None:
        """Ask the server to drain in-flight requests and exit."""
        self._stop_requested = True
        if self.server is None:
            return
        logger.info("Stopping API server...")
        self.server.should_exit = True
