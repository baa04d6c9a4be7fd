"""
Process and service-manager inspection and control for V2Ray.

Provides probes with a "not found is a normal answer" contract plus start and
autostart helpers with fallback strategies:
- Start: systemd (primary), SysV ``service`` (fallback)
- Autostart: systemd (primary), chkconfig (fallback)
"""

import logging
import os
import subprocess

import psutil

from anywhere_agent.errors import DeploymentError, ProcessProbeError
from anywhere_agent.v2ray.models import DeploymentStatus

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 30
SERVICE_OUTPUT_PREVIEW = 100


def _run(cmd: list[str]) -> tuple[int, str]:
    """Run a command, returning (returncode, combined output).

    A missing binary is reported as return code 127 rather than raised.
    """
    logger.debug(f"Executing command: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT,
            check=False,
        )
    except FileNotFoundError:
        logger.debug(f"Command not found: {cmd[0]}")
        return 127, ""
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out after {COMMAND_TIMEOUT}s: {' '.join(cmd)}")
        return 124, ""
    output = (result.stdout or "") + (result.stderr or "")
    logger.debug(f"{' '.join(cmd)} exited {result.returncode}: {output.strip()[:SERVICE_OUTPUT_PREVIEW]}")
    return result.returncode, output


def is_process_present(service_name: str = "v2ray") -> bool:
    """Check the process table for a process mentioning ``service_name``.

    Returns:
        True if a matching process exists, False if none does

    Raises:
        ProcessProbeError: If the process table itself cannot be read
    """
    own_pid = os.getpid()
    try:
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            if proc.info["pid"] == own_pid:
                continue
            name = proc.info.get("name") or ""
            cmdline = " ".join(proc.info.get("cmdline") or [])
            if service_name in name or service_name in cmdline:
                logger.debug(f"Found {service_name} process: pid={proc.info['pid']} cmdline={cmdline}")
                return True
    except (psutil.Error, OSError) as e:
        raise ProcessProbeError(f"failed to check {service_name} process: {e}") from e
    return False


def is_service_active(service_name: str = "v2ray") -> bool | None:
    """Ask the service manager whether the service is active.

    Returns:
        True if active, False if a manager answered "not running", None if no manager is available
    """
    code, output = _run(["systemctl", "is-active", service_name])
    if code == 0 and output.strip() == "active":
        return True
    systemd_answered = code not in (124, 127)

    code, output = _run(["service", service_name, "status"])
    if code == 0 and ("running" in output or "active" in output):
        return True
    if systemd_answered or code not in (124, 127):
        return False
    return None


def is_service_running(service_name: str = "v2ray") -> bool:
    """Check whether the service is running by any available signal.

    Tries the service manager first and falls back to the process table.
    Never raises for the ordinary "not running" case.
    """
    if is_service_active(service_name):
        logger.debug(f"{service_name} is running (service manager)")
        return True

    try:
        if is_process_present(service_name):
            logger.debug(f"{service_name} is running (process table)")
            return True
    except ProcessProbeError as e:
        logger.warning(f"Process table probe failed: {e}")

    logger.debug(f"{service_name} is not running")
    return False


def get_version(service_name: str = "v2ray") -> str:
    """Return the service binary's version output, or ``"unknown"``."""
    code, output = _run([service_name, "--version"])
    if code == 0 and output.strip():
        version = output.strip().splitlines()[0]
        logger.info(f"{service_name} version detected: {version}")
        return version
    logger.warning(f"Failed to get {service_name} version (exit {code})")
    return "unknown"


def check_installed(service_name: str = "v2ray") -> tuple[bool, str]:
    """Check whether the service is installed.

    A service process in the process table is taken as proof of installation.

    Returns:
        Tuple of (installed, version); version is "" when not installed

    Raises:
        ProcessProbeError: If the process table cannot be read
    """
    if not is_process_present(service_name):
        logger.info(f"No {service_name} process found")
        return False, ""

    logger.info(f"{service_name} process found")
    return True, get_version(service_name)


def get_service_status(service_name: str = "v2ray") -> DeploymentStatus:
    """Probe the live service state.

    Raises:
        ProcessProbeError: If the process table cannot be read
    """
    installed, version = check_installed(service_name)
    running = is_service_running(service_name)
    logger.info(f"{service_name} status: installed={installed}, running={running}, version={version}")
    return DeploymentStatus(
        installed=installed,
        running=running,
        version=version,
        progress=100,
        message=f"{service_name} status checked",
    )


def start_service(service_name: str = "v2ray") -> str:
    """Start the service via systemd, falling back to SysV ``service``.

    Returns:
        Name of the mechanism that succeeded

    Raises:
        DeploymentError: If every mechanism fails
    """
    code, output = _run(["systemctl", "start", service_name])
    if code == 0:
        logger.info(f"{service_name} started with systemctl")
        return "systemctl"

    logger.warning(f"Failed to start {service_name} with systemctl (exit {code}), trying service command")
    code, output = _run(["service", service_name, "start"])
    if code == 0:
        logger.info(f"{service_name} started with service command")
        return "service"

    raise DeploymentError(f"failed to start {service_name}: {output.strip() or f'exit status {code}'}")


def enable_autostart(service_name: str = "v2ray") -> tuple[bool, str]:
    """Enable start-on-boot (best effort).

    Returns:
        Tuple of (success, message)
    """
    code, _ = _run(["systemctl", "enable", service_name])
    if code == 0:
        msg = f"{service_name} enabled on boot with systemctl"
        logger.info(msg)
        return True, msg

    logger.warning(f"Failed to enable {service_name} with systemctl (exit {code}), trying chkconfig")
    code, output = _run(["chkconfig", service_name, "on"])
    if code == 0:
        msg = f"{service_name} enabled on boot with chkconfig"
        logger.info(msg)
        return True, msg

    msg = f"Failed to enable {service_name} on boot: {output.strip() or f'exit status {code}'}"
    logger.warning(msg)
    return False, msg
