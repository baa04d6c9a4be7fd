"""Allow running the agent as a module with python -m anywhere_agent."""

from .cli import main

if __name__ == "__main__":
    import sys

    sys.exit(main())
