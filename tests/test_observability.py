"""
Rewrite Audit Tests
===================

INVARIANTS TESTED:
1. Every decision leaves an immutable entry with a monotonic sequence
2. Entries can be filtered by event type, node and layer
3. A disabled collector records nothing
"""

import dataclasses

import pytest

from conversion import EngineConfig, RewriteEventType, RewriteLog, construct


def engine_with_rules(config=None):
    engine = construct(
        {"type": "noun", "value": [{"type": "consonant", "value": "k"}, {"type": "vowel", "value": "a"}]},
        ["underlying", "phonic"],
        config=config,
    )
    engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                     "outcomes": ["e"], "reason": "raising"})
    engine.add_rule({"layer": "underlying", "action": "promote", "outcomes": [{}], "reason": "carry over"})
    engine.init()
    return engine


class TestRewriteLog:

    def test_sequence_is_monotonic(self):
        log = RewriteLog()
        first = log.record(RewriteEventType.TRANSFORM, 0, 0, 1, "because", value="x")
        second = log.record(RewriteEventType.PROMOTE, 0, 1)
        assert (first.sequence, second.sequence) == (0, 1)
        assert first.get("value") == "x"
        assert first.get("missing") is None
        assert log.entry_count == 2

    def test_entries_are_immutable(self):
        entry = RewriteLog().record(RewriteEventType.DROP, 3, 1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.layer = 2

    def test_disabled_collector(self):
        log = RewriteLog(enabled=False)
        assert log.record(RewriteEventType.DROP, 0, 0) is None
        assert log.entry_count == 0

    def test_clear_restarts_sequence(self):
        log = RewriteLog()
        log.record(RewriteEventType.DROP, 0, 0)
        log.clear()
        assert log.record(RewriteEventType.DROP, 0, 0).sequence == 0


class TestEngineAudit:

    def test_decisions_are_recorded(self):
        engine = engine_with_rules()
        audit = engine.audit
        assert len(audit.get_entries(RewriteEventType.UNDERLYING)) == 2
        [transform] = audit.get_entries(RewriteEventType.TRANSFORM)
        assert transform.reason == "raising"
        assert transform.get("value") == "e"
        assert len(audit.get_entries(RewriteEventType.PROMOTE, layer=1)) == 2

    def test_filter_by_node(self):
        engine = engine_with_rules()
        k, a = engine.trackers
        assert all(e.node_id == k.node_id for e in engine.audit.get_entries(node_id=k.node_id))
        assert {e.event_type for e in engine.audit.get_entries(node_id=a.node_id)} >= {
            RewriteEventType.UNDERLYING, RewriteEventType.TRANSFORM, RewriteEventType.PROMOTE,
        }

    def test_report(self):
        engine = engine_with_rules()
        report = engine.audit.generate_report()
        assert report["total_entries"] == engine.audit.entry_count
        assert report["by_event_type"]["promote"] == 2
        assert report["by_layer"][0] == 3
        assert report["sequence_range"]["start"] == 0

    def test_init_starts_a_new_trail(self):
        engine = engine_with_rules()
        count = engine.audit.entry_count
        engine.init()
        assert engine.audit.entry_count == count

    def test_choice_edit_and_drop_are_recorded(self):
        engine = construct({"type": "noun", "value": [{"type": "vowel", "value": "a"}]},
                           ["underlying", "phonic"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                         "outcomes": ["a", "o"], "weights": [1, 0]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "promote",
                         "outcomes": [{}]})
        engine.init()
        assert engine.collect("phonic") == ["a"]

        engine.update_choice(engine.trackers[0], "underlying", 1, 1)
        assert engine.collect("phonic") == [None]
        assert len(engine.audit.get_entries(RewriteEventType.CHOICE_EDIT)) == 1
        [drop] = engine.audit.get_entries(RewriteEventType.DROP)
        assert drop.layer == 1

    def test_audit_can_be_disabled(self):
        engine = engine_with_rules(EngineConfig(enable_audit=False))
        assert engine.audit.entry_count == 0
        assert engine.collect("phonic") == ["k", "e"]
