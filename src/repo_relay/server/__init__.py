"""HTTP server for repo-relay: webhook receiver, status API, CLI."""
