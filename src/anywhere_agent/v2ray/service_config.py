"""V2Ray configuration file management.

The existing file is parsed and compared field by field, so a running service
is never restarted onto an identical configuration.
"""

import json
import logging
from pathlib import Path
from typing import Any

from anywhere_agent.errors import DeploymentError

logger = logging.getLogger(__name__)


def build_config(port: int, client_id: str, access_log: str, error_log: str) -> dict[str, Any]:
    """Build the V2Ray configuration document.

    Args:
        port: Inbound vmess port
        client_id: vmess client id (the identity secret)
        access_log: Access log path (the traffic artifact)
        error_log: Error log path

    Returns:
        Configuration as a JSON-serializable dictionary
    """
    return {
        "log": {
            "access": access_log,
            "error": error_log,
            "loglevel": "info",
        },
        "inbounds": [
            {
                "port": port,
                "protocol": "vmess",
                "settings": {
                    "clients": [
                        {
                            "id": client_id,
                            "alterId": 0,
                        }
                    ]
                },
            }
        ],
        "outbounds": [
            {
                "protocol": "freedom",
                "tag": "direct",
                "settings": {},
            }
        ],
    }


def config_matches(data: Any, port: int, client_id: str) -> bool:
    """Check whether a parsed config already serves ``client_id`` on ``port``.

    Both must hold on the same inbound.
    """
    if not isinstance(data, dict):
        return False
    inbounds = data.get("inbounds")
    if not isinstance(inbounds, list):
        return False

    for inbound in inbounds:
        if not isinstance(inbound, dict):
            continue
        try:
            inbound_port = int(inbound.get("port", -1))
        except (TypeError, ValueError):
            continue
        if inbound_port != port:
            continue
        settings = inbound.get("settings")
        clients = settings.get("clients") if isinstance(settings, dict) else None
        if not isinstance(clients, list):
            continue
        for client in clients:
            if isinstance(client, dict) and client.get("id") == client_id:
                return True
    return False


class ServiceConfigManager:
    """Manages the V2Ray config file on disk."""

    def __init__(self, config_path: Path | str, error_log: Path | str) -> None:
        """Initialize config manager.

        Args:
            config_path: Path of the V2Ray config file
            error_log: Path of the V2Ray error log (its directory is created on write)
        """
        self.config_path = Path(config_path)
        self.error_log = Path(error_log)

    def load(self) -> Any | None:
        """Load the existing config.

        Returns:
            Parsed JSON, or None if the file does not exist or is not valid JSON

        Raises:
            DeploymentError: If the file exists but cannot be read
        """
        try:
            text = self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise DeploymentError(f"failed to read v2ray config: {e}") from e

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Existing V2Ray config {self.config_path} is not valid JSON: {e}")
            return None

    def is_configured(self, port: int, client_id: str) -> bool:
        """Check whether the file on disk already has the required settings."""
        return config_matches(self.load(), port, client_id)

    def ensure(self, port: int, client_id: str, access_log: str) -> bool:
        """Write the config unless it already has the required settings.

        Returns:
            True if the file was (re)written, False if it was left untouched

        Raises:
            DeploymentError: If reading or writing fails
        """
        logger.info(f"Configuring V2Ray: config_path={self.config_path}, port={port}")

        existing = self.load()
        if existing is None:
            logger.info(f"V2Ray config not found or unreadable, creating new one: {self.config_path}")
        elif config_matches(existing, port, client_id):
            logger.info("V2Ray config already contains required settings, skipping")
            return False
        else:
            logger.info("Existing V2Ray config does not match required settings, creating new config")

        self.write(port, client_id, access_log)
        return True

    def write(self, port: int, client_id: str, access_log: str) -> None:
        """Write a fresh config, replacing any prior content.

        Raises:
            DeploymentError: If a directory or the file cannot be written
        """
        document = build_config(port, client_id, access_log, str(self.error_log))

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeploymentError(f"failed to create config directory: {e}") from e

        content = json.dumps(document, indent=2)
        try:
            self.config_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise DeploymentError(f"failed to write v2ray config: {e}") from e
        logger.info(f"V2Ray config file written: {self.config_path} ({len(content)} bytes)")

        try:
            self.error_log.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeploymentError(f"failed to create log directory: {e}") from e
