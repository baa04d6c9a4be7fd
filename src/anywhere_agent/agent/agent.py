"""Agent composition root.

Wires the deployer, scheduler, cloud client and API server together, owns the
process-wide stop event and is the only caller of the cloud terminate API.

LIFECYCLE:
1. Construct with a loaded AgentConfig (fails fast without a cloud client)
2. start() launches deployment, the API server and the scheduler, then blocks
   until the API server exits
3. stop() (from another thread or a signal handler thread) cancels deployment,
   stops the scheduler, drains the API server and waits for the workers
"""

import logging
import threading

from anywhere_agent.agent.conduit import StatusConduit
from anywhere_agent.agent.scheduler import Scheduler
from anywhere_agent.api.server import ApiServer
from anywhere_agent.cloud.ec2 import CloudClient, EC2Client
from anywhere_agent.config import AgentConfig
from anywhere_agent.v2ray.deploy import Deployer
from anywhere_agent.v2ray.models import DeploymentStatus
from anywhere_agent.v2ray.traffic import TrafficMonitor

logger = logging.getLogger(__name__)

# Extra seconds allowed on top of the API grace period when joining workers
JOIN_MARGIN_SECONDS = 5.0


class Agent:
    """Anywhere Agent core."""

    def __init__(
        self,
        config: AgentConfig,
        cloud_client: CloudClient | None = None,
        deployer: Deployer | None = None,
        api_server: ApiServer | None = None,
        monitor: TrafficMonitor | None = None,
    ) -> None:
        """Initialize agent.

        Args:
            config: Loaded configuration
            cloud_client: Cloud client (built from instance metadata if None)
            deployer: V2Ray deployer (built from config if None)
            api_server: API server (built from config if None)
            monitor: Traffic monitor (built from config if None)

        Raises:
            AgentStartupError: If the cloud client cannot be built
        """
        self.config = config
        self.conduit = StatusConduit()
        self.monitor = monitor or TrafficMonitor(config.v2ray.access_log, config.checks.idle_timeout)
        self.cloud: CloudClient = cloud_client if cloud_client is not None else EC2Client.from_instance_metadata()
        self.deployer = deployer or Deployer(config.v2ray)
        self.api_server = api_server or ApiServer(config, self.conduit, self.monitor)
        self.scheduler = Scheduler(config.checks, self.monitor, on_idle=self.terminate_self)

        self._stop_event = threading.Event()
        self._stop_lock = threading.Lock()
        self._terminate_lock = threading.Lock()
        self._api_done = threading.Event()
        self._deployment_done = threading.Event()
        self._deployment_result: DeploymentStatus | None = None
        self._deploy_thread: threading.Thread | None = None
        self._api_thread: threading.Thread | None = None
        self._launched = False
        self._terminated = False
        self._api_exited_early = False

    @property
    def stopping(self) -> bool:
        """Whether stop() has been called."""
        return self._stop_event.is_set()

    @property
    def api_exited_early(self) -> bool:
        """Whether the API server exited before stop() was called."""
        return self._api_exited_early

    def start(self) -> None:
        """Launch all workers and block until the API server exits."""
        self.launch()
        self._api_done.wait()

    def launch(self) -> None:
        """Launch deployment, the API server and the scheduler without blocking.

        Holds the stop lock while workers are spawned, so a concurrent stop()
        either prevents the launch or sees every worker it has to stop.

        Raises:
            RuntimeError: If the agent was already launched
        """
        with self._stop_lock:
            if self._launched:
                raise RuntimeError("Agent already started")
            self._launched = True

            if self._stop_event.is_set():
                logger.info("Agent stopped before launch, not starting workers")
                return

            logger.info("Starting Anywhere Agent...")

            self._deploy_thread = threading.Thread(target=self._deploy, name="deploy-v2ray", daemon=True)
            self._deploy_thread.start()

            self._api_thread = threading.Thread(target=self._serve_api, name="api-server", daemon=True)
            self._api_thread.start()

            self.scheduler.start()

        logger.info("Anywhere Agent started successfully")

    def stop(self) -> None:
        """Stop the agent and wait for its workers. Safe to call more than once."""
        with self._stop_lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()

        logger.info("Stopping Anywhere Agent...")
        self.scheduler.stop()
        self.api_server.stop()

        grace = self.config.api.shutdown_timeout.total_seconds() + JOIN_MARGIN_SECONDS
        if self._api_thread is not None:
            self._api_thread.join(grace)
            if self._api_thread.is_alive():
                logger.warning(f"API server did not stop within {grace:.0f}s")
        if self._deploy_thread is not None:
            self._deploy_thread.join()
        if not self.scheduler.join(grace):
            logger.warning("Scheduler loops still running after stop (in-flight tick)")

        self._api_done.set()
        logger.info("Anywhere Agent stopped successfully")

    def wait_for_deployment(self, timeout: float | None = None) -> DeploymentStatus | None:
        """Wait for the startup deployment attempt to finish.

        Returns:
            Final status of the attempt, or None if it has not finished within ``timeout``
        """
        if not self._deployment_done.wait(timeout):
            return None
        return self._deployment_result

    def terminate_self(self) -> bool:
        """Terminate the instance this agent runs on.

        At most one termination request is outstanding at a time; a call made
        while another is in flight returns immediately. Once a request has
        succeeded, later calls are no-ops.

        Returns:
            True if the terminate request was issued, False if skipped

        Raises:
            MetadataError: If the instance id cannot be resolved
            ProviderError: If the terminate call fails
        """
        if self._stop_event.is_set():
            logger.info("Agent is stopping, skipping instance termination")
            return False

        if not self._terminate_lock.acquire(blocking=False):
            logger.warning("Instance termination already in progress, skipping")
            return False

        try:
            if self._terminated:
                logger.debug("Instance termination already requested, skipping")
                return False

            instance_id = self.cloud.current_instance_id()
            logger.info(f"Terminating idle instance: instance_id={instance_id}")
            self.cloud.terminate(instance_id)
            self._terminated = True
            logger.info(f"Instance terminated successfully: instance_id={instance_id}")
            return True
        finally:
            self._terminate_lock.release()

    def _deploy(self) -> None:
        """Run the startup deployment attempt and hand its status to the conduit."""
        logger.info("Deploying V2Ray...")
        v2ray = self.config.v2ray
        try:
            status = self.deployer.deploy(v2ray.port, v2ray.uuid, v2ray.access_log, cancel=self._stop_event)
            self._deployment_result = status
            if not self.conduit.offer(status):
                logger.debug("Previous deployment status was never read")
            logger.info(f"V2Ray deployment finished: progress={status.progress}, message={status.message}")
        finally:
            self._deployment_done.set()

    def _serve_api(self) -> None:
        """Run the API server; its exit releases start()."""
        try:
            self.api_server.serve()
        except (Exception, SystemExit) as e:
            logger.error(f"API server error: {e}", exc_info=True)
        finally:
            if not self._stop_event.is_set():
                self._api_exited_early = True
            self._api_done.set()
