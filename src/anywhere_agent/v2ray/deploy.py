"""Deployment controller for V2Ray.

One call to ``Deployer.deploy`` is one deployment attempt:

    not_started -> checking_installed -> (done) | installing -> configuring
        -> starting -> enabling_autostart -> verifying -> done

The attempt only moves forward. A stop event is checked at every stage
boundary; while the installer runs, the event is polled and the installer's
process group is killed when it fires. Every exit path returns a populated
DeploymentStatus; failures end up in its message instead of being raised.
"""

import logging
import os
import signal
import subprocess
import threading

from anywhere_agent.config import V2RayConfig
from anywhere_agent.errors import DeploymentError, ProcessProbeError
from anywhere_agent.v2ray import service
from anywhere_agent.v2ray.models import DeploymentStatus, DeployStage
from anywhere_agent.v2ray.service_config import ServiceConfigManager

logger = logging.getLogger(__name__)


class DeploymentCanceled(Exception):
    """Raised internally when the stop event fires mid-attempt."""

    pass


class Deployer:
    """Idempotently installs, configures and starts V2Ray."""

    # Seconds between stop-event checks while the installer runs
    INSTALL_POLL_INTERVAL = 0.2

    def __init__(self, v2ray_config: V2RayConfig, config_manager: ServiceConfigManager | None = None) -> None:
        """Initialize deployer.

        Args:
            v2ray_config: Service settings (name, installer, config and log paths)
            config_manager: Config file manager (created from v2ray_config if None)
        """
        self.service_name = v2ray_config.service_name
        self.install_command = v2ray_config.install_command
        self.config_manager = config_manager or ServiceConfigManager(v2ray_config.config_path, v2ray_config.error_log)
        self.stage = DeployStage.NOT_STARTED

    def check_installed(self) -> tuple[bool, str]:
        """Check whether V2Ray is installed.

        Returns:
            Tuple of (installed, version)

        Raises:
            ProcessProbeError: If the process table cannot be read
        """
        return service.check_installed(self.service_name)

    def deploy(
        self,
        port: int,
        identity_secret: str,
        access_log_path: str,
        cancel: threading.Event | None = None,
    ) -> DeploymentStatus:
        """Run one deployment attempt.

        Args:
            port: Inbound port to configure
            identity_secret: vmess client id to configure
            access_log_path: Access log path to configure (the traffic artifact)
            cancel: Stop event; when set, the attempt ends at the next checkpoint

        Returns:
            Final status of the attempt. Cancellation yields a "canceled" message, failure
            yields the error text; neither raises.
        """
        if cancel is None:
            cancel = threading.Event()

        self.stage = DeployStage.NOT_STARTED
        status = DeploymentStatus(progress=0, message="Starting V2Ray deployment")
        logger.info(f"Starting V2Ray deployment: port={port}, uuid={identity_secret[:8]}..., access_log={access_log_path}")

        try:
            self._advance(status, cancel, DeployStage.CHECKING_INSTALLED, 0, "Checking V2Ray installation")
            installed, version = self.check_installed()
            self._checkpoint(cancel)

            if installed:
                status.installed = True
                status.running = service.is_service_running(self.service_name)
                status.version = version
                status.progress = 100
                status.message = "V2Ray already installed"
                self.stage = DeployStage.DONE
                logger.info(f"V2Ray already installed: version={version}")
                return status

            self._advance(status, cancel, DeployStage.INSTALLING, 20, "Downloading and installing V2Ray")
            self._install(cancel)
            status.progress = 40
            status.message = "V2Ray installation completed"
            logger.info("V2Ray installation completed")

            self._advance(status, cancel, DeployStage.CONFIGURING, 60, "Configuring V2Ray")
            self.config_manager.ensure(port, identity_secret, access_log_path)
            logger.info("V2Ray configuration completed")

            self._advance(status, cancel, DeployStage.STARTING, 80, "Starting V2Ray service")
            service.start_service(self.service_name)

            self._advance(status, cancel, DeployStage.ENABLING_AUTOSTART, 80, "Setting V2Ray to start on boot")
            service.enable_autostart(self.service_name)

            self._advance(status, cancel, DeployStage.VERIFYING, 100, "Verifying V2Ray installation")
            installed, version = self.check_installed()
            status.installed = installed
            status.version = version
            status.running = service.is_service_running(self.service_name)
            status.message = "V2Ray deployment completed"
            self.stage = DeployStage.DONE
            logger.info(f"V2Ray deployment completed: installed={installed}, version={version}, running={status.running}")

        except DeploymentCanceled as e:
            status.message = str(e)
            logger.info(f"V2Ray deployment canceled during {self.stage.value}")
        except (DeploymentError, ProcessProbeError) as e:
            status.message = str(e)
            logger.error(f"V2Ray deployment failed during {self.stage.value}: {e}")
        except Exception as e:
            status.message = f"unexpected deployment error: {e}"
            logger.error(f"Unexpected error during {self.stage.value}: {e}", exc_info=True)

        return status

    def _checkpoint(self, cancel: threading.Event) -> None:
        if cancel.is_set():
            raise DeploymentCanceled("Deployment canceled")

    def _advance(
        self,
        status: DeploymentStatus,
        cancel: threading.Event,
        stage: DeployStage,
        progress: int,
        message: str,
    ) -> None:
        """Check the stop event, then enter ``stage``."""
        self._checkpoint(cancel)
        self.stage = stage
        status.progress = progress
        status.message = message
        logger.info(message)

    def _install(self, cancel: threading.Event) -> None:
        """Run the installer, killing it if the stop event fires.

        Raises:
            DeploymentCanceled: If the stop event fired while installing
            DeploymentError: If the installer could not run or exited non-zero
        """
        cmd = ["bash", "-c", self.install_command]
        logger.debug(f"Executing command: {cmd}")
        try:
            process = subprocess.Popen(cmd, start_new_session=True, stdin=subprocess.DEVNULL)
        except OSError as e:
            raise DeploymentError(f"failed to install v2ray: {e}") from e

        while True:
            try:
                return_code = process.wait(timeout=self.INSTALL_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel.is_set():
                    logger.info("V2Ray installation canceled due to stop signal")
                    self._kill(process)
                    raise DeploymentCanceled("Installation canceled") from None

        if return_code != 0:
            raise DeploymentError(f"failed to install v2ray: exit status {return_code}")

    def _kill(self, process: subprocess.Popen[bytes]) -> None:
        """Kill the installer and everything it spawned."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning(f"Failed to kill installer process group {process.pid}: {e}")
            process.kill()
        process.wait()
        logger.info(f"Killed V2Ray installation process (pid={process.pid})")
