"""Format relay output as GitHub-flavored Markdown.

Handles:
- Mirrored issue title and body (with the machine-readable back-reference)
- Reply relay comments
- Command replies (help, status, list, link confirmations, denials)
- Error comments posted by the shared error handler

Every body the relay writes carries at least one marker from
conventions.RELAY_MARKERS, which is what keeps it from being relayed again.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from repo_relay import conventions

# GitHub rejects issue and comment bodies above 65536 characters
MAX_BODY_LENGTH = 65_000

_ORIGIN_RE = re.compile(
    rf"{re.escape(conventions.RELAY_ORIGIN_PREFIX)} `([\w.-]+/[\w.-]+)#(\d+)`"
)

COMMAND_HELP: dict[str, str] = {
    "link": "Relay this issue to `owner/repo` and link the two threads",
    "unlink": "Remove the link for this issue",
    "status": "Show where this issue is linked",
    "list": "List thread links from this repository",
    "cleanup": "Remove stale thread links and relay history",
    "help": "Show this help",
    "deploy_strategy": "Relay a deployment strategy (`strategy:` required)",
    "report_status": "Relay a status report",
}


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n\n_…message truncated by RepoRelay._"


class RelayFormatter:
    """Builds the Markdown the relay posts to GitHub."""

    @staticmethod
    def relay_title(command_type: str, origin_repo_name: str) -> str:
        return f"[Relay] {command_type} from {origin_repo_name}"

    @staticmethod
    def relay_body(
        *,
        origin_repo: str,
        origin_issue: int,
        command_type: str,
        sender: str,
        params: dict[str, str],
        message: str,
        signature: str,
    ) -> str:
        """Mirrored issue body.

        The trailing HTML comment and "Originally relayed from" line are
        parsed by the reply relay to find its way back to the origin.
        """
        shown_params = {k: v for k, v in params.items() if k != "token"}
        return (
            f"{conventions.RELAY_HEADING} `{origin_repo}#{origin_issue}`**\n"
            "\n"
            f"**Command:** {command_type}  \n"
            f"**Sender:** @{sender}  \n"
            f"**Parameters:** {json.dumps(shown_params, indent=2)}\n"
            "\n"
            "---\n"
            "\n"
            "**Original Message:**\n"
            "\n"
            f"{_truncate(message, MAX_BODY_LENGTH - 2000)}\n"
            "\n"
            "---\n"
            "\n"
            "🔗 [View original thread]"
            f"(https://github.com/{origin_repo}/issues/{origin_issue})\n"
            "\n"
            f"{conventions.RELAY_COMMENT_MARKER} signature:{signature} "
            f"origin:{origin_repo}#{origin_issue} -->\n"
            f"{conventions.RELAY_ORIGIN_PREFIX} `{origin_repo}#{origin_issue}`\n"
        )

    @staticmethod
    def parse_origin(issue_body: str | None) -> tuple[str, int] | None:
        """Recover ``(origin_repo, origin_issue)`` from a mirrored issue body."""
        if not issue_body:
            return None
        m = _ORIGIN_RE.search(issue_body)
        if m is None:
            return None
        return m.group(1), int(m.group(2))

    @staticmethod
    def reply_body(source_repo: str, sender: str, message: str) -> str:
        quoted = "\n".join(f"> {line}" for line in message.splitlines()) or ">"
        return (
            f"{conventions.REPLY_HEADING} `{source_repo}`**\n"
            "\n"
            f"> _@{sender} said:_\n"
            ">\n"
            f"{_truncate(quoted, MAX_BODY_LENGTH - 500)}\n"
            "\n"
            f"{conventions.RELAY_COMMENT_MARKER} -->\n"
        )

    @staticmethod
    def with_marker(body: str) -> str:
        """Tag a command reply so the relay never acts on its own comments."""
        if conventions.RELAY_COMMENT_MARKER in body:
            return body
        return f"{body}\n\n{conventions.RELAY_COMMENT_MARKER} -->\n"

    @staticmethod
    def format_help() -> str:
        lines = ["### RepoRelay commands\n"]
        lines.extend(f"- `!{name}` - {text}" for name, text in COMMAND_HELP.items())
        lines.append(
            "- Research: "
            + ", ".join(f"`!{name}`" for name in conventions.RESEARCH_COMMANDS)
        )
        lines.extend(
            [
                "",
                "Syntax: `!link target:owner/repo`, `/status`, or a block starting "
                "with `command: <type>` followed by `key: value` lines.",
            ]
        )
        return "\n".join(lines)

    @staticmethod
    def format_link_created(target_repo: str, target_issue: int) -> str:
        return (
            f"🔗 Relayed and linked to `{target_repo}#{target_issue}` "
            f"(https://github.com/{target_repo}/issues/{target_issue})."
        )

    @staticmethod
    def format_relays(results: list[Any]) -> str:
        lines = ["📡 **Relayed to:**"]
        lines.extend(f"- `{r.target}#{r.target_issue}`" for r in results)
        return "\n".join(lines)

    @staticmethod
    def format_status(origin_key: str, link: Any | None) -> str:
        if link is None:
            return f"ℹ️ `{origin_key}` is not linked to any thread."
        when = link.timestamp
        if isinstance(when, datetime):
            when = when.strftime("%Y-%m-%d %H:%M UTC")
        return f"🔗 `{origin_key}` is linked to `{link.target}` (since {when})."

    @staticmethod
    def format_link_list(repo: str, links: list[dict[str, Any]]) -> str:
        if not links:
            return f"_No thread links from `{repo}`._"
        lines = [f"**Thread links from `{repo}`** ({len(links)}):\n"]
        lines.extend(f"- `{entry['key']}` → `{entry['target']}`" for entry in links)
        return "\n".join(lines)

    @staticmethod
    def format_unlinked(origin_key: str, existed: bool) -> str:
        if existed:
            return f"✂️ Removed the link for `{origin_key}`."
        return f"ℹ️ `{origin_key}` had no link to remove."

    @staticmethod
    def format_cleanup(links_removed: int, history_removed: int) -> str:
        entries = "entry" if history_removed == 1 else "entries"
        return (
            f"🧹 Cleanup removed {links_removed} thread link(s) and "
            f"{history_removed} relay history {entries}."
        )

    @staticmethod
    def format_invalid(error: str) -> str:
        return f"❌ **Invalid Command**\n\n{error}"

    @staticmethod
    def format_error_comment(operation: str, error: str, timestamp: str) -> str:
        return (
            "🚨 **RepoRelay Error**\n"
            "\n"
            f"**Operation:** {operation}  \n"
            f"**Error:** {error}  \n"
            f"**Time:** {timestamp}\n"
            "\n"
            "Please check the logs for more details. If this error persists, "
            "contact the repository maintainer.\n"
            "\n"
            f"{conventions.ERROR_COMMENT_MARKER}\n"
        )
