"""Tests for relay signatures, loop detection, and the bounded history."""

from datetime import timedelta

import pytest

from repo_relay.guard import RelayHistoryGuard, compute_signature, is_relayed_message


def _record(guard, signature, **overrides):
    fields = {
        "origin_repo": "joeeddy/a",
        "origin_issue": 1,
        "target_repo": "joeeddy/b",
        "target_issue": 2,
        "sender": "joeeddy",
    }
    fields.update(overrides)
    return guard.record(signature, **fields)


class TestSignature:
    def test_deterministic(self):
        a = compute_signature("joeeddy/a", 1, "!link target:x/y", "x/y")
        b = compute_signature("joeeddy/a", 1, "!link target:x/y", "x/y")
        assert a == b

    def test_fixed_length_hex(self):
        sig = compute_signature("joeeddy/a", 1, "hello", "x/y")
        assert len(sig) == 32
        int(sig, 16)

    def test_each_field_changes_signature(self):
        base = ("joeeddy/a", 1, "hello", "x/y")
        variants = [
            ("joeeddy/other", 1, "hello", "x/y"),
            ("joeeddy/a", 2, "hello", "x/y"),
            ("joeeddy/a", 1, "hello!", "x/y"),
            ("joeeddy/a", 1, "hello", "x/z"),
        ]
        signatures = {compute_signature(*base)}
        signatures |= {compute_signature(*v) for v in variants}
        assert len(signatures) == 5

    def test_none_message(self):
        assert compute_signature("a/b", 1, None, "c/d") == compute_signature(
            "a/b", 1, "", "c/d"
        )


class TestLoopDetection:
    @pytest.mark.parametrize(
        "body",
        [
            "<!-- relayed-by-reporelay signature:abc -->",
            "text\nOriginally relayed from `a/b#1`",
            "📡 **Relayed from `a/b#1`**",
            "💬 **Reply from `a/b`**",
            "prefix !link target:a/b <!-- relayed-by-reporelay -->",
        ],
    )
    def test_markers(self, body):
        assert is_relayed_message(body)

    @pytest.mark.parametrize("body", ["", None, "!link target:a/b", "relayed from a/b"])
    def test_not_relayed(self, body):
        assert not is_relayed_message(body)


class TestHistory:
    def test_contains_after_record(self, guard, clock):
        assert not guard.contains("sig-1")
        entry = _record(guard, "sig-1")
        assert guard.contains("sig-1")
        assert entry.signature == "sig-1"
        assert entry.processed_at == clock.now

    def test_one_entry_per_signature(self, guard):
        _record(guard, "sig-1")
        _record(guard, "sig-1", target_issue=3)
        assert len(guard) == 1
        assert guard.entries()[0].target_issue == 3

    def test_max_size_validated(self):
        with pytest.raises(ValueError):
            RelayHistoryGuard(max_size=0)

    def test_eviction_drops_oldest_tenth(self, clock):
        guard = RelayHistoryGuard(max_size=20, clock=clock)
        for i in range(20):
            _record(guard, f"sig-{i}")
            clock.advance(seconds=1)
        assert len(guard) == 20

        _record(guard, "sig-new")
        # 21 > 20: the two oldest (10% of 20) are evicted
        assert len(guard) == 19
        assert not guard.contains("sig-0")
        assert not guard.contains("sig-1")
        assert guard.contains("sig-2")
        assert guard.contains("sig-new")

    def test_eviction_never_drops_newest_with_equal_timestamps(self, clock):
        guard = RelayHistoryGuard(max_size=3, clock=clock)
        for i in range(4):
            _record(guard, f"sig-{i}")
        # batch is at least one entry; ties are broken by insertion order
        assert len(guard) == 3
        assert not guard.contains("sig-0")
        assert guard.contains("sig-3")

    def test_history_stays_bounded(self, clock):
        guard = RelayHistoryGuard(max_size=10, clock=clock)
        for i in range(100):
            _record(guard, f"sig-{i}")
            clock.advance(seconds=1)
            assert len(guard) <= 10
        assert guard.contains("sig-99")

    def test_entries_newest_first_with_limit(self, guard, clock):
        for i in range(5):
            _record(guard, f"sig-{i}")
            clock.advance(minutes=1)
        entries = guard.entries(limit=3)
        assert [e.signature for e in entries] == ["sig-4", "sig-3", "sig-2"]


class TestHistoryCleanup:
    def test_cleanup_boundary(self, guard, clock):
        start = clock.now
        _record(guard, "exactly-at-cutoff")
        clock.now = start + timedelta(seconds=1)
        _record(guard, "younger")
        clock.now = start - timedelta(seconds=1)
        _record(guard, "older")

        clock.now = start + timedelta(days=7)
        removed = guard.cleanup(max_age_days=7)

        assert removed == 1
        assert not guard.contains("older")
        assert guard.contains("exactly-at-cutoff")
        assert guard.contains("younger")

    def test_cleanup_nothing_to_remove(self, guard):
        _record(guard, "fresh")
        assert guard.cleanup() == 0
        assert len(guard) == 1
