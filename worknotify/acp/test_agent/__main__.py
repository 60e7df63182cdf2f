"""Entry point for running the test agent as a module.

Usage:
    python -m worknotify.acp.test_agent
"""

from worknotify.acp.test_agent.server import main

if __name__ == "__main__":
    main()
