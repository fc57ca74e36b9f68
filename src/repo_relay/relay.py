"""Relay engine - mirrors one command into a new issue in a target repository.

One relay is: loop check, dedup check, issue creation, history record,
success event. A loop or duplicate is a normal outcome and returns None.
Anything else that goes wrong is reported through the shared error
handler and re-raised to the caller. There is no retry and no rollback.
"""

from __future__ import annotations

import logging

from repo_relay.formatter import RelayFormatter
from repo_relay.github import GitHubClient
from repo_relay.guard import RelayHistoryGuard, compute_signature, is_relayed_message
from repo_relay.models import Command, EventContext, RelayResult, utcnow
from repo_relay.notifier import ErrorReporter, EventLog

logger = logging.getLogger(__name__)


class RelayPreconditionError(ValueError):
    """The relay was asked to run with missing or malformed inputs."""


def parse_repo(full_name: str | None) -> tuple[str, str]:
    """Split ``owner/repo``; both segments must be non-empty."""
    owner, _, repo = (full_name or "").strip().partition("/")
    if not owner or not repo or "/" in repo:
        raise RelayPreconditionError(
            f"Invalid target repository format: {full_name}. Expected owner/repo"
        )
    return owner, repo


class RelayEngine:
    """Performs relays from an origin issue to target repositories."""

    def __init__(
        self,
        client: GitHubClient,
        guard: RelayHistoryGuard,
        events: EventLog,
        errors: ErrorReporter,
    ) -> None:
        self._client = client
        self._guard = guard
        self._events = events
        self._errors = errors

    async def relay(
        self,
        ctx: EventContext | None,
        command: Command | None,
        target_repo: str | None,
    ) -> RelayResult | None:
        """Relay *command* from the issue in *ctx* to *target_repo*.

        Returns None when the body is itself a relay or this exact relay
        already happened.
        """
        try:
            if ctx is None or command is None or not target_repo:
                raise RelayPreconditionError("Missing required parameters for relay")
            if ctx.issue_number is None:
                raise RelayPreconditionError("Relay requires an origin issue number")
            owner, repo = parse_repo(target_repo)
            target_repo = f"{owner}/{repo}"
            return await self._relay(ctx, command, owner, repo)
        except Exception as e:
            await self._errors.handle_error(
                ctx,
                e,
                "relay_message",
                {
                    "command": command,
                    "target_repo": target_repo,
                    "origin_repo": ctx.repo_full_name if ctx else None,
                    "origin_issue": ctx.issue_number if ctx else None,
                },
            )
            raise

    async def _relay(
        self, ctx: EventContext, command: Command, owner: str, repo: str
    ) -> RelayResult | None:
        target_repo = f"{owner}/{repo}"
        origin_repo = ctx.repo_full_name
        origin_issue = ctx.issue_number
        message = ctx.body
        signature = compute_signature(origin_repo, origin_issue, message, target_repo)

        if is_relayed_message(message):
            logger.info("Skipping relay of relayed message to prevent loop")
            return None
        if self._guard.contains(signature):
            logger.info(
                "Skipping duplicate relay (already processed)",
                extra={"signature": signature},
            )
            return None

        title = RelayFormatter.relay_title(command.type, ctx.repo_name)
        body = RelayFormatter.relay_body(
            origin_repo=origin_repo,
            origin_issue=origin_issue,
            command_type=command.type,
            sender=command.sender,
            params=command.params,
            message=message,
            signature=signature,
        )

        logger.info(
            "Relaying message from %s#%s to %s",
            origin_repo,
            origin_issue,
            target_repo,
            extra={"repo": origin_repo, "issue": origin_issue, "signature": signature},
        )
        issue = await self._client.create_issue(owner, repo, title, body)

        now = utcnow()
        self._guard.record(
            signature,
            origin_repo=origin_repo,
            origin_issue=origin_issue,
            target_repo=target_repo,
            target_issue=issue.number,
            sender=command.sender,
            created_at=now,
        )
        result = RelayResult(
            origin=origin_repo,
            origin_issue=origin_issue,
            target=target_repo,
            target_issue=issue.number,
            signature=signature,
            sender=command.sender,
            timestamp=now,
        )
        await self._events.log_event(
            "success",
            f"Message relayed from {origin_repo}#{origin_issue} "
            f"to {target_repo}#{issue.number}",
            result.to_dict(),
        )
        return result
