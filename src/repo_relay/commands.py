"""Command handlers.

Each recognized CommandType maps to one handler in a closed table. Types
without a dedicated handler (deploy_strategy, report_status, research
types) take the default arm: relay to the command's target, or to every
target in the repository settings, and link each resulting thread.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from repo_relay.config import RelayConfig
from repo_relay.formatter import RelayFormatter
from repo_relay.guard import RelayHistoryGuard
from repo_relay.links import ThreadLinkStore, link_key
from repo_relay.models import Command, CommandType, EventContext, RelayResult
from repo_relay.relay import RelayEngine
from repo_relay.schema import RepoSettings

logger = logging.getLogger(__name__)


@dataclass
class CommandOutcome:
    """Result of a command execution."""

    reply: str | None = None  # Comment to post on the origin issue
    relays: list[RelayResult] = field(default_factory=list)


Handler = Callable[[EventContext, Command, RepoSettings], Awaitable[CommandOutcome]]


class CommandHandler:
    """Executes validated, authorized commands."""

    def __init__(
        self,
        engine: RelayEngine,
        links: ThreadLinkStore,
        guard: RelayHistoryGuard,
        config: RelayConfig,
    ) -> None:
        self._engine = engine
        self._links = links
        self._guard = guard
        self._config = config
        self._handlers: dict[CommandType, Handler] = {
            CommandType.LINK: self.cmd_link,
            CommandType.UNLINK: self.cmd_unlink,
            CommandType.STATUS: self.cmd_status,
            CommandType.HELP: self.cmd_help,
            CommandType.LIST: self.cmd_list,
            CommandType.CLEANUP: self.cmd_cleanup,
        }

    def handler_for(self, command: Command) -> Handler:
        kind = command.kind
        if kind is not None and kind in self._handlers:
            return self._handlers[kind]
        return self.cmd_relay

    async def handle(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        """Route and execute a command."""
        handler = self.handler_for(command)
        logger.info(
            "Executing '%s' from %s on %s#%s",
            command.type,
            command.sender,
            ctx.repo_full_name,
            ctx.issue_number,
        )
        return await handler(ctx, command, settings)

    async def _relay_and_link(
        self, ctx: EventContext, command: Command, target_repo: str
    ) -> RelayResult | None:
        try:
            result = await self._engine.relay(ctx, command, target_repo)
        except Exception:
            # Already reported through the shared error handler
            logger.debug("Relay to %s failed", target_repo, exc_info=True)
            return None
        if result is None:
            return None
        await self._links.link_thread(
            result.origin,
            result.origin_issue,
            result.target,
            result.target_issue,
            {
                "command": command.type,
                "sender": command.sender,
                "signature": result.signature,
            },
        )
        return result

    # --- Handlers ---

    async def cmd_link(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        result = await self._relay_and_link(ctx, command, command.target or "")
        if result is None:
            return CommandOutcome()
        return CommandOutcome(
            reply=RelayFormatter.format_link_created(
                result.target, result.target_issue
            ),
            relays=[result],
        )

    async def cmd_unlink(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        existed = await self._links.unlink_thread(ctx.repo_full_name, ctx.issue_number)
        key = link_key(ctx.repo_full_name, ctx.issue_number)
        return CommandOutcome(reply=RelayFormatter.format_unlinked(key, existed))

    async def cmd_status(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        link = await self._links.get_linked_thread(ctx.repo_full_name, ctx.issue_number)
        key = link_key(ctx.repo_full_name, ctx.issue_number)
        return CommandOutcome(reply=RelayFormatter.format_status(key, link))

    async def cmd_help(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        return CommandOutcome(reply=RelayFormatter.format_help())

    async def cmd_list(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        links = await self._links.get_links_for_repo(ctx.repo_full_name)
        return CommandOutcome(
            reply=RelayFormatter.format_link_list(ctx.repo_full_name, links)
        )

    async def cmd_cleanup(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        links_removed = await self._links.cleanup_old_links(
            self._config.link_max_age_days
        )
        history_removed = self._guard.cleanup(self._config.history_max_age_days)
        return CommandOutcome(
            reply=RelayFormatter.format_cleanup(links_removed, history_removed)
        )

    async def cmd_relay(
        self, ctx: EventContext, command: Command, settings: RepoSettings
    ) -> CommandOutcome:
        """Default arm: relay to the command target or the configured targets."""
        targets = [command.target] if command.target else list(settings.targets)
        if not targets:
            logger.info(
                "No relay targets for '%s' on %s", command.type, ctx.repo_full_name
            )
            return CommandOutcome()

        results: list[RelayResult] = []
        for target in targets:
            result = await self._relay_and_link(ctx, command, target)
            if result is not None:
                results.append(result)

        if not results:
            return CommandOutcome()
        return CommandOutcome(
            reply=RelayFormatter.format_relays(results), relays=results
        )
