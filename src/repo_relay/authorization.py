"""Command authorization.

A command may run only from a private repository owned by the authorized
user. Inside such a repository the authorized user may run anything; any
other sender must look like a bot and present the shared relay token.

The repository check performs one GitHub lookup with a bounded timeout.
Every failure of that lookup denies (fail-closed).
"""

from __future__ import annotations

import asyncio
import logging

from repo_relay import conventions
from repo_relay.config import RelayConfig
from repo_relay.github import GitHubClient
from repo_relay.models import AuthorizationResult, AuthReason, Command

logger = logging.getLogger(__name__)


def is_bot_sender(sender: str | None) -> bool:
    """Whether *sender* matches a known automation account pattern."""
    if not sender:
        return False
    name = sender.lower()
    return name.endswith(conventions.BOT_SUFFIXES) or name.startswith(
        conventions.BOT_PREFIXES
    )


def requires_token_validation(sender: str, params: dict[str, str] | None) -> bool:
    """Token checks apply to bot senders, or whenever a token is supplied."""
    return is_bot_sender(sender) or bool(params and params.get("token"))


class AuthorizationValidator:
    """Decides whether a parsed command may execute."""

    def __init__(self, client: GitHubClient, config: RelayConfig) -> None:
        self._client = client
        self._config = config

    async def is_authorized_private_repo(self, owner: str, repo: str) -> bool:
        """True only if *owner* is the authorized user and the repo is private."""
        if owner != self._config.authorized_user:
            return False
        try:
            info = await asyncio.wait_for(
                self._client.get_repository(owner, repo),
                timeout=self._config.visibility_timeout,
            )
        except TimeoutError:
            logger.warning("Visibility lookup for %s/%s timed out", owner, repo)
            return False
        except Exception:
            logger.warning(
                "Visibility lookup for %s/%s failed", owner, repo, exc_info=True
            )
            return False
        return info.private is True

    async def validate(
        self, repo_owner: str, repo_name: str, command: Command
    ) -> AuthorizationResult:
        """Run the authorization decision for *command* from *repo_owner/repo_name*."""
        authorized_user = self._config.authorized_user
        sender = command.sender
        is_bot = is_bot_sender(sender)
        token = command.params.get("token")
        secret = self._config.relay_token
        has_valid_token = bool(token) and bool(secret) and token == secret

        if not await self.is_authorized_private_repo(repo_owner, repo_name):
            return AuthorizationResult.deny(
                AuthReason.UNAUTHORIZED_REPO,
                "❌ **Unauthorized Repository**\n\n"
                "Commands are only allowed from private repositories owned by "
                f"{authorized_user}.",
            )

        if sender == authorized_user:
            return AuthorizationResult.allow(
                AuthReason.AUTHORIZED_USER,
                is_bot=is_bot,
                has_valid_token=has_valid_token,
            )

        if not is_bot:
            return AuthorizationResult.deny(
                AuthReason.UNAUTHORIZED_USER,
                "❌ **Unauthorized User**\n\n"
                f"Only user '{authorized_user}' or authorized bots with valid "
                "tokens can use this bot.",
            )

        if not secret:
            return AuthorizationResult.deny(
                AuthReason.TOKEN_NOT_CONFIGURED,
                "❌ **Configuration Error**\n\n"
                "REPO_RELAY_TOKEN not configured on server.",
            )

        if token != secret:
            return AuthorizationResult.deny(
                AuthReason.INVALID_TOKEN,
                "❌ **Invalid Token**\n\n"
                "Bot/automated commands require a valid token parameter.",
            )

        return AuthorizationResult.allow(
            AuthReason.AUTHORIZED_BOT, is_bot=True, has_valid_token=True
        )
