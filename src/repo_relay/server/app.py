"""Relay server - FastAPI application.

Architecture:
    GitHub webhook -> POST /webhook -> GitHubEventHandler
        -> CommandParser -> AuthorizationValidator
        -> CommandHandler -> RelayEngine (+ RelayHistoryGuard)
        -> ThreadLinkStore
        -> reply comment via GitHubClient

Routes:
    /webhook          - GitHub webhook receiver
    /api/health       - Health check
    /api/status       - Mode, link/history counts, scheduler state
    /api/events       - Recent relay events (type/repo/limit filters)
    /api/links        - Persisted thread links
    /api/history      - Recent relay history entries

Components are created once by ``initialize()`` and kept in module
state. Tests call ``initialize()`` directly with injected dependencies.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request

from repo_relay.authorization import AuthorizationValidator
from repo_relay.commands import CommandHandler
from repo_relay.config import RelayConfig
from repo_relay.events import GitHubEventHandler
from repo_relay.github import GitHubClient, HttpGitHubClient, MemoryGitHubClient
from repo_relay.guard import RelayHistoryGuard
from repo_relay.links import ThreadLinkStore
from repo_relay.notifier import ErrorReporter, EventLog, SlackWebhookNotifier
from repo_relay.parser import CommandParser
from repo_relay.relay import RelayEngine
from repo_relay.scheduler import CleanupScheduler

logger = logging.getLogger(__name__)

router = APIRouter()

# --- Global relay state (initialized on startup) ---

_state: dict[str, Any] = {}
_state_lock = threading.Lock()


def _get_state() -> dict[str, Any]:
    """Get the initialized relay state."""
    with _state_lock:
        if not _state:
            raise RuntimeError("Relay not initialized. Call initialize() first.")
        return _state


def initialize(
    config: RelayConfig | None = None,
    client: GitHubClient | None = None,
    links: ThreadLinkStore | None = None,
    guard: RelayHistoryGuard | None = None,
) -> dict[str, Any]:
    """Create and wire every relay component.

    Client resolution: explicit parameter (tests), then HttpGitHubClient
    when a GitHub token is configured, else MemoryGitHubClient.
    """
    if config is None:
        config = RelayConfig.from_env()

    if client is None:
        if config.is_configured:
            client = HttpGitHubClient(config.github_token, config.github_api_url)
        else:
            logger.info("No GitHub token configured, using in-memory client")
            client = MemoryGitHubClient()

    notifier = SlackWebhookNotifier(config.slack_webhook)
    events = EventLog(config.max_relay_history, notifier)
    errors = ErrorReporter(client, events, notifier, config.post_error_comments)
    if guard is None:
        guard = RelayHistoryGuard(config.max_relay_history)
    if links is None:
        links = ThreadLinkStore(config.links_path)
    engine = RelayEngine(client, guard, events, errors)
    commands = CommandHandler(engine, links, guard, config)
    handler = GitHubEventHandler(
        client,
        CommandParser(),
        AuthorizationValidator(client, config),
        commands,
        events,
        errors,
        config,
    )
    scheduler = CleanupScheduler(links, guard, config)

    state = {
        "config": config,
        "client": client,
        "events": events,
        "guard": guard,
        "links": links,
        "engine": engine,
        "commands": commands,
        "handler": handler,
        "scheduler": scheduler,
    }
    with _state_lock:
        _state.clear()
        _state.update(state)
    return state


async def on_startup() -> None:
    if not _state:
        initialize()
    state = _get_state()
    state["scheduler"].start()
    logger.info("Relay initialized (mode: %s)", state["config"].mode)


async def on_shutdown() -> None:
    with _state_lock:
        scheduler = _state.get("scheduler")
    if scheduler is not None:
        scheduler.stop()
    logger.info("Relay shut down")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await on_startup()
    try:
        yield
    finally:
        await on_shutdown()


# --- Routes ---


@router.post("/webhook")
async def github_webhook(request: Request) -> dict[str, Any]:
    """GitHub webhook receiver."""
    state = _get_state()
    handler: GitHubEventHandler = state["handler"]

    body = await request.body()
    if not handler.verify_signature(body, request.headers.get("X-Hub-Signature-256")):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    event = request.headers.get("X-GitHub-Event", "")
    return await handler.handle_webhook(event, payload)


@router.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/status")
async def relay_status() -> dict[str, Any]:
    """Relay health and counters."""
    state = _get_state()
    config: RelayConfig = state["config"]
    guard: RelayHistoryGuard = state["guard"]
    links: ThreadLinkStore = state["links"]
    scheduler: CleanupScheduler = state["scheduler"]
    events: EventLog = state["events"]

    return {
        "status": "ok",
        "mode": config.mode,
        "authorized_user": config.authorized_user,
        "thread_links": len(await links.get_all_thread_links()),
        "relay_history": len(guard),
        "events": len(events),
        "cleanup_running": scheduler.is_running,
    }


@router.get("/api/events")
async def list_events(
    type: str | None = None, repo: str | None = None, limit: int = 50
) -> list[dict[str, Any]]:
    """Recent relay events, newest first."""
    events: EventLog = _get_state()["events"]
    return [e.to_dict() for e in events.get_events(type=type, repo=repo, limit=limit)]


@router.get("/api/links")
async def list_links(repo: str | None = None) -> list[dict[str, Any]]:
    """Persisted thread links, optionally only those from one repository."""
    links: ThreadLinkStore = _get_state()["links"]
    if repo:
        return await links.get_links_for_repo(repo)
    return await links.get_all_thread_links()


@router.get("/api/history")
async def list_history(limit: int = 100) -> list[dict[str, Any]]:
    """Recent relay history entries, newest first."""
    guard: RelayHistoryGuard = _get_state()["guard"]
    return [entry.to_dict() for entry in guard.entries(limit=limit)]


def create_app(title: str = "Repo Relay", version: str = "0.1.0") -> FastAPI:
    """Build the FastAPI application (state comes from ``initialize()``)."""
    app = FastAPI(title=title, version=version, lifespan=lifespan)
    app.include_router(router)
    return app
