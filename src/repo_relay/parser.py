"""Command parser.

Extracts a structured Command from the free text of an issue or comment
body. Several syntaxes have been accepted over time; they are tried as an
ordered list of named matchers, most structured first:

1. ``header``   - ``command: <type>`` followed by ``key: value`` lines
2. ``inline``   - ``!type <rest>`` / ``/type <rest>`` where rest is a bare
                  target or ``key:value`` pairs
3. ``bare``     - ``!type`` / ``/type`` with nothing after it
4. ``legacy``   - ``command <type> target <repo>``

The first matcher whose result is an acceptable command wins. Malformed
input is never an error: it simply yields no command.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from repo_relay import conventions
from repo_relay.models import Command, CommandType, ValidationResult, utcnow

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"command:[ \t]*(\w+)[ \t]*(?:\r?\n([\s\S]*))?", re.IGNORECASE)
_PARAM_LINE_RE = re.compile(r"^\s*(\w+):\s*(.+?)\s*$")
_INLINE_RE = re.compile(r"(?:^|(?<=\s))[!/](\w+)[ \t]+(\S[^\r\n]*)", re.MULTILINE)
_BARE_RE = re.compile(r"(?:^|(?<=\s))[!/](\w+)[ \t]*$", re.MULTILINE)
_LEGACY_RE = re.compile(r"command\s+(\w+)\s+target\s+(\S+)", re.IGNORECASE)


@dataclass
class ParsedFields:
    """Raw output of a single matcher, before acceptance checks."""

    type: str
    target: str | None = None
    params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Matcher:
    name: str
    match: Callable[[str], ParsedFields | None]


def _split_pairs(rest: str) -> list[str]:
    """Split on whitespace, honouring quotes when they are balanced.

    Backslashes are literal (``path:C:\\dir`` survives intact).
    """
    lexer = shlex.shlex(rest, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    lexer.escape = ""
    try:
        return list(lexer)
    except ValueError:
        return rest.split()


def _target_from(params: dict[str, str]) -> str | None:
    return params.get("target") or params.get("repo") or None


def match_header(body: str) -> ParsedFields | None:
    m = _HEADER_RE.search(body)
    if m is None:
        return None
    params: dict[str, str] = {}
    for line in (m.group(2) or "").splitlines():
        line_match = _PARAM_LINE_RE.match(line)
        if line_match:
            params[line_match.group(1)] = line_match.group(2)
    return ParsedFields(type=m.group(1), target=_target_from(params), params=params)


def match_inline(body: str) -> ParsedFields | None:
    m = _INLINE_RE.search(body)
    if m is None:
        return None
    rest = m.group(2).strip()
    if ":" not in rest:
        return ParsedFields(type=m.group(1), target=rest.split()[0])
    params: dict[str, str] = {}
    for pair in _split_pairs(rest):
        key, sep, value = pair.partition(":")
        key, value = key.strip(), value.strip()
        if sep and key and value:
            params[key] = value
    return ParsedFields(type=m.group(1), target=_target_from(params), params=params)


def match_bare(body: str) -> ParsedFields | None:
    m = _BARE_RE.search(body)
    if m is None:
        return None
    return ParsedFields(type=m.group(1))


def match_legacy(body: str) -> ParsedFields | None:
    m = _LEGACY_RE.search(body)
    if m is None:
        return None
    return ParsedFields(type=m.group(1), target=m.group(2))


MATCHERS: tuple[Matcher, ...] = (
    Matcher("header", match_header),
    Matcher("inline", match_inline),
    Matcher("bare", match_bare),
    Matcher("legacy", match_legacy),
)


def is_target_exempt(command_type: str) -> bool:
    """Whether a command type may be issued without a target."""
    return command_type in conventions.TARGET_EXEMPT_COMMANDS


class CommandParser:
    """Walks the matchers in priority order and returns the first accepted command."""

    def __init__(self, matchers: tuple[Matcher, ...] = MATCHERS) -> None:
        self._matchers = matchers

    def parse(
        self, body: str | None, sender: str | None, timestamp: datetime | None = None
    ) -> Command | None:
        """Parse *body* into a Command, or return None when nothing matches."""
        if not body or not sender:
            return None

        for matcher in self._matchers:
            fields = matcher.match(body)
            if fields is None:
                continue
            command_type = fields.type.lower()
            if not command_type:
                continue
            if not fields.target and not is_target_exempt(command_type):
                logger.debug(
                    "Matcher %s found '%s' without a target, trying next",
                    matcher.name,
                    command_type,
                )
                continue
            logger.debug("Matcher %s parsed command '%s'", matcher.name, command_type)
            return Command(
                type=command_type,
                sender=sender,
                timestamp=timestamp or utcnow(),
                target=fields.target or None,
                params=fields.params,
            )
        return None

    def parse_payload(self, payload: dict[str, Any]) -> Command | None:
        """Parse the command carried by a webhook payload."""
        return self.parse(resolve_body(payload), resolve_sender(payload))


def resolve_body(payload: dict[str, Any]) -> str:
    """Issue body, falling back to comment body."""
    issue = payload.get("issue") or {}
    comment = payload.get("comment") or {}
    return issue.get("body") or comment.get("body") or ""


def resolve_sender(payload: dict[str, Any]) -> str:
    """Issue author, then comment author, then event sender."""
    for source in ("issue", "comment"):
        login = ((payload.get(source) or {}).get("user") or {}).get("login")
        if login:
            return login
    return (payload.get("sender") or {}).get("login") or ""


_default_parser = CommandParser()


def parse_command(payload: dict[str, Any]) -> Command | None:
    """Module-level shortcut using the default matcher list."""
    return _default_parser.parse_payload(payload)


def validate_command(command: Command | None) -> ValidationResult:
    """Check that a parsed command is one we know how to execute."""
    if command is None:
        return ValidationResult(valid=False, error="No command provided")

    if command.kind is None:
        return ValidationResult(
            valid=False,
            error=(
                f"Unknown command: {command.type}. Valid commands: "
                f"{', '.join(conventions.RECOGNIZED_COMMANDS)}"
            ),
        )

    if command.kind is CommandType.LINK:
        if not command.target:
            return ValidationResult(
                valid=False, error="Link command requires target repository"
            )
        if "/" not in command.target:
            return ValidationResult(
                valid=False, error="Target must be in format owner/repo"
            )
    elif command.kind is CommandType.DEPLOY_STRATEGY and not command.params.get(
        "strategy"
    ):
        return ValidationResult(
            valid=False, error="deploy_strategy requires strategy parameter"
        )

    return ValidationResult(valid=True)
