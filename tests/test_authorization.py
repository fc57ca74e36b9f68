"""Tests for the authorization validator and bot detection."""

import asyncio

import pytest

from repo_relay.authorization import (
    AuthorizationValidator,
    is_bot_sender,
    requires_token_validation,
)
from repo_relay.config import RelayConfig
from repo_relay.github import MemoryGitHubClient, RepositoryInfo
from repo_relay.models import AuthorizationResult, AuthReason, Command

OWNER = "joeeddy"


@pytest.fixture
def client():
    c = MemoryGitHubClient()
    c.seed_repo(f"{OWNER}/private-repo", private=True)
    c.seed_repo(f"{OWNER}/public-repo", private=False)
    c.seed_repo("someone-else/private-repo", private=True)
    return c


def _validator(client, token=""):
    return AuthorizationValidator(
        client,
        RelayConfig(
            authorized_user=OWNER, relay_token=token, visibility_timeout=0.2
        ),
    )


def _cmd(sender, **params):
    return Command(type="link", sender=sender, target="a/b", params=params)


class TestBotDetection:
    @pytest.mark.parametrize(
        "sender",
        [
            "deploybot",
            "CI-Bot",
            "relay[bot]",
            "github-actions[bot]",
            "GitHub-Actions",
            "dependabot-preview",
            "renovate-runner",
        ],
    )
    def test_bot_names(self, sender):
        assert is_bot_sender(sender)

    @pytest.mark.parametrize("sender", ["joeeddy", "robotics-fan", "bottle", "", None])
    def test_human_names(self, sender):
        assert not is_bot_sender(sender)

    def test_requires_token_validation(self):
        assert requires_token_validation("ci-bot", {})
        assert requires_token_validation("alice", {"token": "x"})
        assert not requires_token_validation("alice", {})
        assert not requires_token_validation("alice", None)


class TestRepositoryGate:
    @pytest.mark.asyncio
    async def test_other_owner_denied_without_lookup(self, client):
        validator = _validator(client)
        result = await validator.validate("someone-else", "private-repo", _cmd(OWNER))
        assert not result.authorized
        assert result.reason == AuthReason.UNAUTHORIZED_REPO
        assert client.repository_lookups == []

    @pytest.mark.asyncio
    async def test_public_repo_denied_even_for_owner(self, client):
        result = await _validator(client).validate(OWNER, "public-repo", _cmd(OWNER))
        assert not result.authorized
        assert result.reason == AuthReason.UNAUTHORIZED_REPO
        assert "private repositories owned by joeeddy" in result.message

    @pytest.mark.asyncio
    async def test_lookup_error_denies(self, client):
        result = await _validator(client).validate(OWNER, "missing-repo", _cmd(OWNER))
        assert result.reason == AuthReason.UNAUTHORIZED_REPO

    @pytest.mark.asyncio
    async def test_lookup_timeout_denies(self, client):
        class SlowClient(MemoryGitHubClient):
            async def get_repository(self, owner, repo):
                await asyncio.sleep(5)
                return RepositoryInfo(owner=owner, name=repo, private=True)

        result = await _validator(SlowClient()).validate(OWNER, "any", _cmd(OWNER))
        assert result.reason == AuthReason.UNAUTHORIZED_REPO


class TestSenderPolicy:
    @pytest.mark.asyncio
    async def test_authorized_user(self, client):
        result = await _validator(client).validate(OWNER, "private-repo", _cmd(OWNER))
        assert result.authorized
        assert result.reason == AuthReason.AUTHORIZED_USER
        assert result.is_bot is False
        assert result.has_valid_token is False
        assert result.message is None

    @pytest.mark.asyncio
    async def test_authorized_user_token_is_informational(self, client):
        validator = _validator(client, token="s3cret")
        ok = await validator.validate(
            OWNER, "private-repo", _cmd(OWNER, token="s3cret")
        )
        wrong = await validator.validate(
            OWNER, "private-repo", _cmd(OWNER, token="nope")
        )
        assert ok.authorized and ok.has_valid_token is True
        assert wrong.authorized and wrong.has_valid_token is False

    @pytest.mark.asyncio
    async def test_human_stranger_denied(self, client):
        result = await _validator(client, token="s3cret").validate(
            OWNER, "private-repo", _cmd("alice", token="s3cret")
        )
        assert not result.authorized
        assert result.reason == AuthReason.UNAUTHORIZED_USER

    @pytest.mark.asyncio
    async def test_bot_without_configured_token(self, client):
        result = await _validator(client).validate(
            OWNER, "private-repo", _cmd("ci-bot", token="anything")
        )
        assert result.reason == AuthReason.TOKEN_NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_bot_with_wrong_token(self, client):
        result = await _validator(client, token="s3cret").validate(
            OWNER, "private-repo", _cmd("ci-bot", token="guess")
        )
        assert result.reason == AuthReason.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_bot_without_token_param(self, client):
        result = await _validator(client, token="s3cret").validate(
            OWNER, "private-repo", _cmd("ci-bot")
        )
        assert result.reason == AuthReason.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_bot_with_matching_token(self, client):
        result = await _validator(client, token="s3cret").validate(
            OWNER, "private-repo", _cmd("github-actions[bot]", token="s3cret")
        )
        assert result.authorized
        assert result.reason == AuthReason.AUTHORIZED_BOT
        assert result.is_bot is True
        assert result.has_valid_token is True

    @pytest.mark.asyncio
    async def test_bot_in_unauthorized_repo(self, client):
        result = await _validator(client, token="s3cret").validate(
            OWNER, "public-repo", _cmd("ci-bot", token="s3cret")
        )
        assert result.reason == AuthReason.UNAUTHORIZED_REPO


class TestAuthorizationResult:
    def test_denial_reason_cannot_authorize(self):
        with pytest.raises(ValueError):
            AuthorizationResult(authorized=True, reason=AuthReason.INVALID_TOKEN)
