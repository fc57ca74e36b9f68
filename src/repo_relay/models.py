"""Data models for the relay.

Defines the core data structures used throughout the service:
- Command-side models (parsed commands, validation and authorization results)
- Relay-side models (history entries, relay results, thread links)
- Event-side models (webhook event context, observability events)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_datetime(value: Any) -> datetime:
    """Coerce a persisted timestamp into an aware datetime.

    Accepts ISO-8601 strings and epoch milliseconds (the format older
    link files were written in).
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Unsupported timestamp: {value!r}")


class CommandType(StrEnum):
    """Recognized command types."""

    LINK = "link"
    UNLINK = "unlink"
    STATUS = "status"
    HELP = "help"
    LIST = "list"
    CLEANUP = "cleanup"
    DEPLOY_STRATEGY = "deploy_strategy"
    REPORT_STATUS = "report_status"
    SHARE_EXPERIMENT = "share_experiment"
    CITE_PAPER = "cite_paper"
    SEARCH_PAPERS = "search_papers"
    PEER_REVIEW = "peer_review"
    SHARE_MODEL = "share_model"
    SHARE_DATASET = "share_dataset"


class AuthReason(StrEnum):
    """Why a command was (or was not) authorized."""

    AUTHORIZED_USER = "authorized_user"
    AUTHORIZED_BOT = "authorized_bot"
    UNAUTHORIZED_REPO = "unauthorized_repo"
    UNAUTHORIZED_USER = "unauthorized_user"
    TOKEN_NOT_CONFIGURED = "token_not_configured"
    INVALID_TOKEN = "invalid_token"


GRANTING_REASONS = frozenset({AuthReason.AUTHORIZED_USER, AuthReason.AUTHORIZED_BOT})


@dataclass
class Command:
    """A command parsed from one issue or comment body. Never persisted."""

    type: str
    sender: str
    timestamp: datetime = field(default_factory=utcnow)
    target: str | None = None
    params: dict[str, str] = field(default_factory=dict)

    @property
    def kind(self) -> CommandType | None:
        """The recognized command type, or None for an unknown type."""
        try:
            return CommandType(self.type)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        """Serializable view; the shared relay token is never included."""
        return {
            "type": self.type,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
            "target": self.target,
            "params": {k: v for k, v in self.params.items() if k != "token"},
        }


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None


@dataclass
class AuthorizationResult:
    """Outcome of authorizing one command.

    ``message`` is set only on denial; ``is_bot``/``has_valid_token``
    only on success.
    """

    authorized: bool
    reason: AuthReason
    message: str | None = None
    is_bot: bool | None = None
    has_valid_token: bool | None = None

    def __post_init__(self) -> None:
        if self.authorized and self.reason not in GRANTING_REASONS:
            raise ValueError(f"Reason {self.reason} cannot authorize a command")

    @classmethod
    def allow(
        cls, reason: AuthReason, is_bot: bool, has_valid_token: bool
    ) -> AuthorizationResult:
        return cls(
            authorized=True,
            reason=reason,
            is_bot=is_bot,
            has_valid_token=has_valid_token,
        )

    @classmethod
    def deny(cls, reason: AuthReason, message: str) -> AuthorizationResult:
        return cls(authorized=False, reason=reason, message=message)


@dataclass(frozen=True)
class RelayHistoryEntry:
    """One successfully relayed (origin, body, target) tuple."""

    origin_repo: str
    origin_issue: int
    target_repo: str
    target_issue: int
    created_at: datetime
    sender: str
    signature: str
    processed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin_repo": self.origin_repo,
            "origin_issue": self.origin_issue,
            "target_repo": self.target_repo,
            "target_issue": self.target_issue,
            "created_at": self.created_at.isoformat(),
            "sender": self.sender,
            "signature": self.signature,
            "processed_at": self.processed_at.isoformat(),
        }


@dataclass(frozen=True)
class RelayResult:
    """What a completed relay produced."""

    origin: str
    origin_issue: int
    target: str
    target_issue: int
    signature: str
    sender: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin": self.origin,
            "origin_issue": self.origin_issue,
            "target": self.target,
            "target_issue": self.target_issue,
            "signature": self.signature,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ThreadLink:
    """Directed origin -> target thread link.

    ``target`` is ``"{repo}#{issue}"``. Metadata (command type, sender,
    relay signature) is flattened into the persisted record.
    """

    target: str
    timestamp: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.metadata,
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ThreadLink:
        metadata = {k: v for k, v in data.items() if k not in ("target", "timestamp")}
        return cls(
            target=data["target"],
            timestamp=to_datetime(data["timestamp"]),
            metadata=metadata,
        )


@dataclass
class EventContext:
    """The parts of a GitHub webhook delivery the relay works with."""

    event: str
    action: str
    repo_owner: str
    repo_name: str
    issue_number: int | None = None
    issue_body: str = ""
    issue_author: str = ""
    comment_body: str = ""
    comment_author: str = ""
    sender: str = ""
    payload: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def repo_full_name(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def is_comment(self) -> bool:
        return self.event == "issue_comment"

    @property
    def body(self) -> str:
        """Raw message body: issue body first, then comment body."""
        return self.issue_body or self.comment_body

    @classmethod
    def from_payload(cls, event: str, payload: dict[str, Any]) -> EventContext:
        repository = payload.get("repository") or {}
        issue = payload.get("issue") or {}
        comment = payload.get("comment") or {}
        owner = (repository.get("owner") or {}).get("login", "")
        name = repository.get("name", "")
        if not owner and "/" in repository.get("full_name", ""):
            owner, name = repository["full_name"].split("/", 1)
        return cls(
            event=event,
            action=payload.get("action", ""),
            repo_owner=owner,
            repo_name=name,
            issue_number=issue.get("number") or payload.get("number"),
            issue_body=issue.get("body") or "",
            issue_author=(issue.get("user") or {}).get("login", ""),
            comment_body=comment.get("body") or "",
            comment_author=(comment.get("user") or {}).get("login", ""),
            sender=(payload.get("sender") or {}).get("login", ""),
            payload=payload,
        )


@dataclass
class RelayEvent:
    """One observability event (consumed by dashboards and notifiers)."""

    id: str
    timestamp: str
    type: str  # info | success | warning | error
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type,
            "message": self.message,
            "details": self.details,
        }
