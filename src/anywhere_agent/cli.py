"""
CLI entry point for the Anywhere Agent.

Provides commands:
- run: Deploy V2Ray, serve the control API and watch for idleness (default)
- token: Print a signed access token for the control API
"""

import argparse
import logging
import signal
import sys
import threading
from datetime import timedelta

from anywhere_agent import get_version
from anywhere_agent.config import DEFAULT_CONFIG_FILE, DEFAULT_LOG_DIR, AgentConfig
from anywhere_agent.errors import AgentStartupError, ConfigError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="anywhere-agent",
        description="Anywhere Agent - self-terminating V2Ray node agent",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help=f"Path to config file (default: {DEFAULT_CONFIG_FILE})")
    parser.add_argument("--log-dir", default=DEFAULT_LOG_DIR, help=f"Directory for log files (default: {DEFAULT_LOG_DIR})")
    parser.add_argument("--version", action="store_true", help="Print version and exit")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Run command
    _run_parser = subparsers.add_parser("run", help="Run the agent (default)")

    # Token command
    token_parser = subparsers.add_parser("token", help="Print an access token for the control API")
    token_parser.add_argument("--user-id", default="admin", help="User id to embed in the token (default: admin)")
    token_parser.add_argument("--hours", type=float, default=24.0, help="Token lifetime in hours (default: 24)")

    return parser


def load_config(path: str) -> AgentConfig | None:
    """Load configuration, printing the error to stderr on failure."""
    try:
        return AgentConfig.from_file(path)
    except ConfigError as e:
        print(f"Failed to load config: {e}", file=sys.stderr)
        return None


def issue_token(args: argparse.Namespace) -> int:
    """Print a signed access token."""
    from anywhere_agent.api.auth import create_access_token

    config = load_config(args.config)
    if config is None:
        return 1
    if args.hours <= 0:
        print("--hours must be positive", file=sys.stderr)
        return 1

    print(create_access_token(args.user_id, config.api.jwt_secret, timedelta(hours=args.hours)))
    return 0


def run_agent(args: argparse.Namespace) -> int:
    """Run the agent until a shutdown signal arrives or the API server exits."""
    from anywhere_agent.agent.agent import Agent
    from anywhere_agent.log_setup import setup_logging

    config = load_config(args.config)
    if config is None:
        return 1

    log_file = setup_logging(args.log_dir, config.log)
    logger.info(f"Anywhere Agent {get_version()} starting (config={config.source}, log={log_file})")

    try:
        agent = Agent(config)
    except AgentStartupError as e:
        logger.critical(f"Failed to create agent: {e}")
        return 1

    shutdown = threading.Event()

    def signal_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    def run() -> None:
        try:
            agent.start()
        except Exception as e:
            logger.error(f"Agent stopped unexpectedly: {e}", exc_info=True)
        finally:
            shutdown.set()

    agent_thread = threading.Thread(target=run, name="agent", daemon=True)
    agent_thread.start()

    # Event.wait() with no timeout would delay signal delivery on the main thread
    while not shutdown.wait(0.5):
        pass

    agent.stop()
    agent_thread.join(config.api.shutdown_timeout.total_seconds())

    if agent.api_exited_early:
        logger.error("API server exited before shutdown was requested")
        return 1
    logger.info("Agent exited")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the anywhere-agent CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"Anywhere Agent {get_version()}")
        return 0

    if args.command == "token":
        return issue_token(args)
    return run_agent(args)


if __name__ == "__main__":
    sys.exit(main())
