"""Allow running as: python -m repo_relay.server"""

from repo_relay.server.cli import main

main()
