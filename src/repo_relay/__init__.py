"""Repo Relay - relays GitHub issue threads across repositories."""

__version__ = "0.1.0"
