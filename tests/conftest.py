"""Shared test fixtures for repo-relay."""

import asyncio
import contextlib
from datetime import UTC, datetime

import pytest

OWNER = "joeeddy"
ORIGIN = f"{OWNER}/research-lab"
TARGET = f"{OWNER}/deploy-hub"


class FakeClock:
    """Controllable clock for age-based cleanup tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        from datetime import timedelta

        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def relay_config(tmp_path):
    """A RelayConfig that never touches the home directory."""
    from repo_relay.config import RelayConfig

    return RelayConfig(
        authorized_user=OWNER,
        relay_token="s3cret",
        thread_links_file=str(tmp_path / "links.json"),
        visibility_timeout=0.5,
    )


@pytest.fixture
def github():
    """A MemoryGitHubClient with an enabled private origin and a target repo."""
    from repo_relay.github import MemoryGitHubClient

    client = MemoryGitHubClient()
    client.seed_repo(
        ORIGIN, private=True, config={"enabled": True, "targets": [TARGET]}
    )
    client.seed_repo(TARGET, private=True, next_issue=100)
    return client


@pytest.fixture
def event_log():
    from repo_relay.notifier import EventLog

    return EventLog(max_size=100)


@pytest.fixture
def error_reporter(github, event_log):
    from repo_relay.notifier import ErrorReporter

    return ErrorReporter(github, event_log)


@pytest.fixture
def guard(clock):
    from repo_relay.guard import RelayHistoryGuard

    return RelayHistoryGuard(max_size=50, clock=clock)


@pytest.fixture
def link_store(tmp_path, clock):
    from repo_relay.links import ThreadLinkStore

    return ThreadLinkStore(tmp_path / "links.json", clock=clock)


@pytest.fixture
def engine(github, guard, event_log, error_reporter):
    from repo_relay.relay import RelayEngine

    return RelayEngine(github, guard, event_log, error_reporter)


@pytest.fixture
def command_handler(engine, link_store, guard, relay_config):
    from repo_relay.commands import CommandHandler

    return CommandHandler(engine, link_store, guard, relay_config)


@pytest.fixture
def event_handler(github, command_handler, event_log, error_reporter, relay_config):
    from repo_relay.authorization import AuthorizationValidator
    from repo_relay.events import GitHubEventHandler
    from repo_relay.parser import CommandParser

    return GitHubEventHandler(
        github,
        CommandParser(),
        AuthorizationValidator(github, relay_config),
        command_handler,
        event_log,
        error_reporter,
        relay_config,
    )


def _make_payload(
    body: str,
    *,
    repo: str = ORIGIN,
    issue_number: int = 7,
    author: str = OWNER,
    sender: str | None = None,
    action: str = "opened",
    comment: dict | None = None,
) -> dict:
    """Build a minimal GitHub issues/issue_comment webhook payload."""
    owner, name = repo.split("/")
    payload = {
        "action": action,
        "repository": {"name": name, "full_name": repo, "owner": {"login": owner}},
        "issue": {"number": issue_number, "body": body, "user": {"login": author}},
        "sender": {"login": sender or author},
    }
    if comment is not None:
        payload["comment"] = comment
    return payload


@pytest.fixture(autouse=True)
async def _cancel_stray_tasks():
    """Cancel any tasks that leaked from a test."""
    yield
    await asyncio.sleep(0)
    current = asyncio.current_task()
    for task in asyncio.all_tasks():
        if task is not current and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                await asyncio.wait_for(asyncio.shield(task), timeout=0.1)


@pytest.fixture
def make_payload():
    """Factory for webhook payloads (see _make_payload)."""
    return _make_payload
