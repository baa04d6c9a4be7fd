"""HTTP control API for the agent."""

from .auth import create_access_token, decode_access_token
from .server import ApiServer, create_app

__all__ = ["ApiServer", "create_access_token", "create_app", "decode_access_token"]
