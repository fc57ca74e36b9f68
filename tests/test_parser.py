"""Tests for the command parser and command validation.

Covers: each syntax matcher, matcher priority, parameter aliasing,
target-exempt commands, sender/body resolution, and validate_command.
"""

import pytest

from repo_relay.models import Command
from repo_relay.parser import (
    MATCHERS,
    CommandParser,
    is_target_exempt,
    parse_command,
    resolve_body,
    resolve_sender,
    validate_command,
)


@pytest.fixture
def parser():
    return CommandParser()


class TestHeaderSyntax:
    def test_header_with_params(self, parser):
        cmd = parser.parse("command: link\ntarget: acme/widgets\nfoo: bar", "joeeddy")
        assert cmd is not None
        assert cmd.type == "link"
        assert cmd.target == "acme/widgets"
        assert cmd.params == {"target": "acme/widgets", "foo": "bar"}

    def test_header_type_is_lowercased(self, parser):
        cmd = parser.parse("Command: LINK\ntarget: acme/widgets", "u")
        assert cmd.type == "link"

    def test_header_crlf_lines(self, parser):
        body = "command: report_status\r\ntarget: acme/ops\r\nphase: 2"
        cmd = parser.parse(body, "u")
        assert cmd.target == "acme/ops"
        assert cmd.params["phase"] == "2"

    def test_header_duplicate_key_last_wins(self, parser):
        cmd = parser.parse("command: link\ntarget: a/one\ntarget: a/two", "u")
        assert cmd.target == "a/two"
        assert cmd.params["target"] == "a/two"

    def test_header_repo_alias(self, parser):
        cmd = parser.parse("command: link\nrepo: acme/widgets", "u")
        assert cmd.target == "acme/widgets"

    def test_header_exempt_without_target(self, parser):
        cmd = parser.parse("command: status", "u")
        assert cmd is not None
        assert cmd.type == "status"
        assert cmd.target is None

    def test_header_value_keeps_inner_colons(self, parser):
        cmd = parser.parse("command: link\ntarget: a/b\nurl: https://x.io/y", "u")
        assert cmd.params["url"] == "https://x.io/y"


class TestInlineSyntax:
    def test_key_value_pairs(self, parser):
        cmd = parser.parse("!link target:acme/widgets token:shhh", "u")
        assert cmd.type == "link"
        assert cmd.target == "acme/widgets"
        assert cmd.params["token"] == "shhh"

    def test_slash_prefix(self, parser):
        cmd = parser.parse("/link target:acme/widgets", "u")
        assert cmd.type == "link"
        assert cmd.target == "acme/widgets"

    def test_bare_target(self, parser):
        cmd = parser.parse("!link acme/widgets", "u")
        assert cmd.target == "acme/widgets"
        assert cmd.params == {}

    def test_value_with_colons_splits_on_first(self, parser):
        cmd = parser.parse("!deploy_strategy target:a/b url:https://x.io:8080/p", "u")
        assert cmd.params["url"] == "https://x.io:8080/p"

    def test_repo_alias(self, parser):
        cmd = parser.parse("!report_status repo:acme/ops", "u")
        assert cmd.target == "acme/ops"

    def test_quoted_value(self, parser):
        cmd = parser.parse('!share_experiment target:a/b name:"Test Experiment"', "u")
        assert cmd.params["name"] == "Test Experiment"

    def test_unbalanced_quote_falls_back_to_whitespace(self, parser):
        cmd = parser.parse('!share_experiment target:a/b name:"oops', "u")
        assert cmd.target == "a/b"
        assert cmd.params["name"] == '"oops'

    def test_backslashes_are_kept(self, parser):
        cmd = parser.parse(r"!share_dataset target:a/b path:C:\data\set", "u")
        assert cmd.params["path"] == r"C:\data\set"

    def test_hash_is_not_a_comment(self, parser):
        cmd = parser.parse("!report_status target:a/b ref:a/b#12", "u")
        assert cmd.params["ref"] == "a/b#12"

    def test_command_after_prose(self, parser):
        cmd = parser.parse("Please forward this.\n\n!link target:acme/widgets", "u")
        assert cmd.target == "acme/widgets"

    def test_url_path_is_not_a_command(self, parser):
        assert parser.parse("see https://github.com/foo bar", "u") is None


class TestBareAndLegacySyntax:
    def test_status_without_target(self, parser):
        cmd = parser.parse("!status", "u")
        assert cmd is not None
        assert cmd.type == "status"
        assert cmd.target is None

    def test_help_with_trailing_space(self, parser):
        assert parser.parse("/help  ", "u").type == "help"

    def test_bare_non_exempt_is_rejected(self, parser):
        assert parser.parse("!link", "u") is None

    def test_legacy_form(self, parser):
        cmd = parser.parse("command link target acme/widgets", "u")
        assert cmd.type == "link"
        assert cmd.target == "acme/widgets"


class TestParserContract:
    def test_no_body_or_sender(self, parser):
        assert parser.parse("", "u") is None
        assert parser.parse(None, "u") is None
        assert parser.parse("!status", "") is None

    def test_plain_text_is_no_command(self, parser):
        assert parser.parse("Just a regular issue description.", "u") is None

    def test_sender_and_timestamp_set(self, parser):
        cmd = parser.parse("!status", "octocat")
        assert cmd.sender == "octocat"
        assert cmd.timestamp.tzinfo is not None

    def test_matcher_order(self):
        assert [m.name for m in MATCHERS] == ["header", "inline", "bare", "legacy"]

    def test_header_wins_over_inline(self, parser):
        body = "command: link\ntarget: a/header\n!link target:a/inline"
        cmd = parser.parse(body, "u")
        assert cmd.target == "a/header"

    def test_target_exempt_set(self):
        for name in ("status", "help", "list", "cleanup", "unlink"):
            assert is_target_exempt(name)
        assert not is_target_exempt("link")


class TestPayloadResolution:
    def test_prefers_issue_author(self):
        payload = {
            "issue": {"body": "!status", "user": {"login": "issue-author"}},
            "comment": {"body": "x", "user": {"login": "commenter"}},
            "sender": {"login": "sender"},
        }
        assert resolve_sender(payload) == "issue-author"
        assert resolve_body(payload) == "!status"

    def test_falls_back_to_comment_then_sender(self):
        assert resolve_sender({"comment": {"user": {"login": "c"}}}) == "c"
        assert resolve_sender({"sender": {"login": "s"}}) == "s"
        assert resolve_sender({}) == ""

    def test_body_falls_back_to_comment(self):
        payload = {"issue": {"body": None}, "comment": {"body": "!help"}}
        assert resolve_body(payload) == "!help"

    def test_parse_command_from_payload(self):
        cmd = parse_command({"issue": {"body": "!help", "user": {"login": "joeeddy"}}})
        assert cmd.type == "help"
        assert cmd.sender == "joeeddy"

    def test_missing_sender_is_no_match(self):
        assert parse_command({"issue": {"body": "!help"}}) is None


class TestValidateCommand:
    def test_none(self):
        result = validate_command(None)
        assert not result.valid
        assert result.error == "No command provided"

    def test_unknown_type(self):
        result = validate_command(Command(type="teleport", sender="u", target="a/b"))
        assert not result.valid
        assert "Unknown command: teleport" in result.error

    def test_link_needs_slash(self):
        result = validate_command(Command(type="link", sender="u", target="no-slash"))
        assert not result.valid
        assert result.error == "Target must be in format owner/repo"

    def test_link_needs_target(self):
        result = validate_command(Command(type="link", sender="u"))
        assert result.error == "Link command requires target repository"

    def test_deploy_strategy_needs_strategy(self):
        result = validate_command(
            Command(type="deploy_strategy", sender="u", target="a/b", params={})
        )
        assert not result.valid
        assert result.error == "deploy_strategy requires strategy parameter"

    def test_valid_commands(self):
        assert validate_command(Command(type="link", sender="u", target="a/b")).valid
        assert validate_command(Command(type="status", sender="u")).valid
        assert validate_command(
            Command(
                type="deploy_strategy",
                sender="u",
                target="a/b",
                params={"strategy": "canary"},
            )
        ).valid

    def test_research_types_are_recognized(self):
        cmd = Command(type="cite_paper", sender="u", target="a/b")
        assert validate_command(cmd).valid
