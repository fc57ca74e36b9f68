"""CLI entry point for repo-relay.

Usage:
    repo-relay serve [--host HOST] [--port PORT]   # run the webhook server
    repo-relay links [--repo OWNER/REPO]           # print persisted thread links
    repo-relay cleanup [--max-age-days N]          # remove stale thread links
    python -m repo_relay.server ...                # via module
"""

from __future__ import annotations

import asyncio
import json

import click

from repo_relay import conventions
from repo_relay.config import RelayConfig
from repo_relay.links import ThreadLinkStore


@click.group("repo-relay")
def main() -> None:
    """Relay GitHub issue threads across repositories."""


@main.command()
@click.option("--host", default="127.0.0.1", help="Bind host")
@click.option(
    "--port", default=conventions.SERVER_DEFAULT_PORT, type=int, help="Bind port"
)
@click.option("--log-file", default=None, type=click.Path(), help="JSON log file")
def serve(host: str, port: int, log_file: str | None) -> None:
    """Run the webhook server in the foreground."""
    from pathlib import Path

    import uvicorn

    from repo_relay.server.app import create_app, initialize
    from repo_relay.server.startup import log_startup_info, setup_logging

    setup_logging(Path(log_file) if log_file else None)

    config = RelayConfig.from_env()
    initialize(config)
    log_startup_info(config, host, port)
    click.echo(f"Starting repo-relay on {host}:{port}")
    click.echo(f"  Webhook: http://{host}:{port}/webhook")

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


@main.command()
@click.option("--repo", default=None, help="Only links originating in OWNER/REPO")
def links(repo: str | None) -> None:
    """Print persisted thread links as JSON."""
    store = ThreadLinkStore(RelayConfig.from_env().links_path)
    if repo:
        entries = asyncio.run(store.get_links_for_repo(repo))
    else:
        entries = asyncio.run(store.get_all_thread_links())
    click.echo(json.dumps(entries, indent=2, ensure_ascii=False))


@main.command()
@click.option(
    "--max-age-days",
    default=None,
    type=int,
    help="Remove links older than this (default: configured link max age)",
)
def cleanup(max_age_days: int | None) -> None:
    """Remove thread links older than the age cutoff."""
    config = RelayConfig.from_env()
    days = max_age_days if max_age_days is not None else config.link_max_age_days
    store = ThreadLinkStore(config.links_path)
    removed = asyncio.run(store.cleanup_old_links(days))
    click.echo(f"Removed {removed} thread link(s) older than {days} day(s).")
