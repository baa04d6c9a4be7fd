"""Anywhere Agent: keeps a V2Ray endpoint alive and retires its EC2 host when idle."""

__version__ = "1.0.0"


def get_version() -> str:
    """Return the version string shown by ``--version``."""
    return f"v{__version__}"


__all__ = ["__version__", "get_version"]
