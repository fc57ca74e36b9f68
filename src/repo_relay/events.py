"""GitHub webhook event handler.

The main entry point for every GitHub -> relay delivery:
1. Signature verification (X-Hub-Signature-256)
2. Event filtering (issues/opened, issue_comment/created)
3. The command pipeline: bot short-circuit -> config gate -> parse ->
   validate -> authorize -> command handler -> reply
4. The reply relay: comments on a mirrored issue are sent back to the
   origin thread

Parse non-matches, validation failures and authorization denials end the
pipeline where they are detected. Capability failures go through the
shared error handler.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from pydantic import ValidationError

from repo_relay import conventions
from repo_relay.authorization import AuthorizationValidator
from repo_relay.commands import CommandHandler
from repo_relay.config import RelayConfig
from repo_relay.formatter import RelayFormatter
from repo_relay.github import GitHubClient
from repo_relay.guard import is_relayed_message
from repo_relay.models import EventContext
from repo_relay.notifier import ErrorReporter, EventLog
from repo_relay.parser import CommandParser, validate_command
from repo_relay.relay import parse_repo
from repo_relay.schema import RepoSettings

logger = logging.getLogger(__name__)


class GitHubEventHandler:
    """Routes webhook deliveries through the command pipeline."""

    def __init__(
        self,
        client: GitHubClient,
        parser: CommandParser,
        authorizer: AuthorizationValidator,
        commands: CommandHandler,
        events: EventLog,
        errors: ErrorReporter,
        config: RelayConfig,
    ) -> None:
        self._client = client
        self._parser = parser
        self._authorizer = authorizer
        self._commands = commands
        self._events = events
        self._errors = errors
        self._config = config

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Verify the ``X-Hub-Signature-256`` header for a raw request body.

        Without a configured webhook secret verification is skipped.
        """
        if not self._config.webhook_secret:
            return True
        if not signature or not signature.startswith("sha256="):
            return False
        expected = (
            "sha256="
            + hmac.new(
                self._config.webhook_secret.encode(),
                body,
                hashlib.sha256,
            ).hexdigest()
        )
        return hmac.compare_digest(expected, signature)

    async def handle_webhook(
        self, event: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Handle one delivery. Returns a small JSON-able summary."""
        if event == "ping":
            return {"ok": True, "pong": True}

        action = payload.get("action", "")
        if action not in conventions.HANDLED_EVENTS.get(event, set()):
            logger.debug("Ignoring event %s.%s", event, action)
            return {"ok": True, "handled": "ignored"}

        ctx = EventContext.from_payload(event, payload)
        if not ctx.repo_owner or not ctx.repo_name:
            logger.warning("Event %s.%s without a repository", event, action)
            return {"ok": True, "handled": "ignored"}

        try:
            handled = await self._process(ctx)
        except Exception as e:  # noqa: BLE001
            await self._errors.handle_error(
                ctx, e, "handle_event", {"event": event, "action": action}
            )
            return {"ok": False, "error": str(e)}
        return {"ok": True, "handled": handled}

    async def _process(self, ctx: EventContext) -> str:
        if ctx.sender and ctx.sender == self._config.bot_login:
            logger.debug("Ignoring event sent by the relay itself")
            return "self"

        if ctx.is_comment and _is_relay_authored(ctx.comment_body):
            logger.debug("Ignoring comment written by the relay")
            return "self"

        if ctx.is_comment and await self.relay_reply(ctx):
            return "reply"

        settings = await self.load_settings(ctx)
        if settings is None or not settings.enabled:
            logger.debug("Relay not enabled for %s", ctx.repo_full_name)
            return "disabled"

        command = self._parser.parse_payload(ctx.payload)
        if command is None:
            return "no_command"

        validation = validate_command(command)
        if not validation.valid:
            logger.warning(
                "Invalid command '%s' on %s#%s: %s",
                command.type,
                ctx.repo_full_name,
                ctx.issue_number,
                validation.error,
            )
            reply = RelayFormatter.format_invalid(validation.error or "")
            await self._comment(ctx, reply)
            await self._events.log_event(
                "warning",
                f"Invalid command '{command.type}' on {ctx.repo_full_name}",
                {"repo": ctx.repo_full_name, "error": validation.error},
            )
            return "invalid"

        auth = await self._authorizer.validate(ctx.repo_owner, ctx.repo_name, command)
        if not auth.authorized:
            logger.warning(
                "Denied '%s' from %s on %s: %s",
                command.type,
                command.sender,
                ctx.repo_full_name,
                auth.reason,
            )
            await self._comment(ctx, auth.message or "")
            await self._events.log_event(
                "error",
                f"Unauthorized command attempt by {command.sender}",
                {
                    "repo": ctx.repo_full_name,
                    "sender": command.sender,
                    "command": command.type,
                    "reason": str(auth.reason),
                },
            )
            return "denied"

        outcome = await self._commands.handle(ctx, command, settings)
        if outcome.reply:
            await self._comment(ctx, outcome.reply)
        return "relayed" if outcome.relays else "handled"

    async def load_settings(self, ctx: EventContext) -> RepoSettings | None:
        """Fetch and validate the repository's relay settings (the config gate)."""
        try:
            data = await self._client.get_repo_config(
                ctx.repo_owner, ctx.repo_name, self._config.repo_config_path
            )
        except Exception:
            logger.warning(
                "Could not load relay settings for %s",
                ctx.repo_full_name,
                exc_info=True,
            )
            return None
        if data is None:
            return None
        try:
            return RepoSettings.model_validate(data)
        except ValidationError:
            logger.warning(
                "Invalid relay settings in %s", ctx.repo_full_name, exc_info=True
            )
            return None

    async def relay_reply(self, ctx: EventContext) -> bool:
        """Send a comment on a mirrored issue back to the origin thread.

        Returns True if the comment was relayed.
        """
        body = ctx.comment_body
        author = ctx.comment_author
        if not body or is_relayed_message(body):
            return False
        if author in (self._config.bot_login, ctx.repo_owner):
            return False
        origin = RelayFormatter.parse_origin(ctx.issue_body)
        if origin is None:
            return False
        if self._parser.parse(body, author) is not None:
            return False

        origin_repo, origin_issue = origin
        owner, repo = parse_repo(origin_repo)
        try:
            await self._client.create_comment(
                owner,
                repo,
                origin_issue,
                RelayFormatter.reply_body(ctx.repo_full_name, author, body),
            )
        except Exception:
            logger.exception(
                "Failed to relay reply to %s#%s", origin_repo, origin_issue
            )
            return False
        logger.info("Relayed reply from %s to %s", ctx.repo_full_name, origin_repo)
        await self._events.log_event(
            "info",
            f"Reply relayed from {ctx.repo_full_name}#{ctx.issue_number} "
            f"to {origin_repo}#{origin_issue}",
            {"repo": ctx.repo_full_name, "origin": origin_repo, "sender": author},
        )
        return True

    async def _comment(self, ctx: EventContext, body: str) -> None:
        if not body or ctx.issue_number is None:
            return
        body = RelayFormatter.with_marker(body)
        await self._client.create_comment(
            ctx.repo_owner, ctx.repo_name, ctx.issue_number, body
        )


def _is_relay_authored(body: str) -> bool:
    return is_relayed_message(body) or conventions.ERROR_COMMENT_MARKER in body
