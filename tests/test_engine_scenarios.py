"""
Engine Scenario Tests
=====================

End-to-end behavior of construct / add_rule / init / collect.

INVARIANTS TESTED:
1. Transform, promote and expand produce the documented layer values
2. Environment preconditions gate rules, boundaries included
3. The first eligible rule in registration order wins
4. Rewriting a provider replays its dependents before the next collect
5. Expansion arity is independent of siblings
6. Configuration and lifecycle errors are explicit
"""

import pytest

from conversion import (
    CascadeLimitExceeded, ChoicesExhausted, ConfigurationError, EngineConfig,
    EngineError, RegistryFrozen, UnknownDependencyKind, WeightedChoiceSource, construct,
)


def seg(type, value):
    return {"type": type, "value": value}


def word(*segments, meta=None):
    return {"type": "noun", "meta": meta or {}, "value": list(segments)}


# =============================================================================
# REFERENCE SCENARIOS
# =============================================================================

class TestReferenceScenarios:

    def test_single_transform(self):
        engine = construct(word(seg("vowel", "a")), ["phonic"])
        engine.add_rule({"layer": "phonic", "trigger": {"value": "a"}, "action": "transform",
                         "outcomes": ["aa"]})
        engine.init()
        assert engine.collect("phonic") == ["aa"]

    @pytest.mark.parametrize("segments, expected", [
        ([seg("consonant", "k"), seg("vowel", "a")], ["k", "e"]),
        ([seg("vowel", "a")], ["a"]),
    ])
    def test_previous_consonant_precondition(self, segments, expected):
        engine = construct(word(*segments), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel", "value": "a"},
                         "where": {"prev": {"type": "consonant"}},
                         "action": "transform", "outcomes": ["e"]})
        engine.init()
        assert engine.collect("underlying") == expected

    def test_expand_into_two(self):
        engine = construct(word(seg("consonant", "k"), meta={"gender": "m"}), ["underlying", "phonic"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "k"}, "action": "expand",
                         "outcomes": [["k", {"type": "vowel", "value": "i"}]]})
        engine.init()

        assert engine.collect("underlying") == ["k"]
        assert engine.collect("phonic") == ["k", "i"]

        nested = engine.trackers[0].expansion(1)
        for tracker in nested:
            assert dict(tracker.environment(1)["word"]) == {"gender": "m"}
        assert [t.segment_at(1).type for t in nested] == ["consonant", "vowel"]


# =============================================================================
# RULE APPLICATION
# =============================================================================

class TestRuleApplication:

    def test_no_firing_rule_leaves_segment_unchanged(self):
        """Implicit stay: without a rule nothing reaches the next layer."""
        engine = construct(word(seg("vowel", "a")), ["underlying", "phonic"])
        engine.init()
        assert engine.collect("underlying") == ["a"]
        assert engine.collect("phonic") == [None]

    def test_transform_continues_scan(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform", "outcomes": ["e"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "e"}, "action": "transform", "outcomes": ["i"]})
        engine.init()
        assert engine.collect("underlying") == ["i"]
        assert len(engine.trackers[0].history[0]) == 3

    def test_promote_restarts_at_first_rule_of_next_layer(self):
        engine = construct(word(seg("vowel", "a")), ["underlying", "phonic", "surface"])
        engine.add_rule({"layer": "phonic", "trigger": {"value": "a"}, "action": "promote", "outcomes": ["o"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "promote", "outcomes": [{}]})
        engine.init()
        assert engine.collect("underlying") == ["a"]
        assert engine.collect("phonic") == ["a"]
        assert engine.collect("surface") == ["o"]

    def test_collect_accepts_rank(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        engine.init()
        assert engine.collect(0) == engine.collect("underlying")

    def test_nested_expansion(self):
        engine = construct(word(seg("consonant", "k")), ["underlying", "phonic", "surface"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "k"}, "action": "expand",
                         "outcomes": [["k", "w"]]})
        engine.add_rule({"layer": "phonic", "trigger": {"value": "w"}, "action": "expand",
                         "outcomes": [["u", "u"]]})
        engine.add_rule({"layer": "phonic", "trigger": {"value": "k"}, "action": "promote",
                         "outcomes": [{}]})
        engine.init()
        assert engine.collect("phonic") == ["k", "w"]
        assert engine.collect("surface") == ["k", "u", "u"]

    def test_priority_ordering(self):
        """Of two eligible rules the one registered first fires; the other never does."""
        engine = construct(word(seg("vowel", "a")), ["underlying", "phonic"])
        first = engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"},
                                 "action": "promote", "outcomes": ["x"]})
        second = engine.add_rule({"layer": "underlying", "trigger": {"value": "a"},
                                  "action": "promote", "outcomes": ["y"]})
        engine.init()
        assert engine.collect("phonic") == ["x"]
        fired = {entry.rule_index for entry in engine.audit.get_entries()}
        assert first.index in fired
        assert second.index not in fired

    def test_weighted_outcomes_respect_zero_weight(self):
        engine = construct(word(*[seg("vowel", "a")] * 10), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                         "outcomes": {"e": 0, "i": 1}})
        engine.init()
        assert engine.collect("underlying") == ["i"] * 10

    def test_context_and_metadata_preconditions(self):
        engine = construct(
            {"type": "verb", "meta": {"tense": "past"}, "value": [seg("vowel", "a")], "context": ["pausal"]},
            ["underlying"],
        )
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                         "where": {"word": {"tense": "past"}, "context": lambda tags: "pausal" in tags},
                         "outcomes": ["aa"]})
        engine.init()
        assert engine.collect("underlying") == ["aa"]

    def test_two_segments_away(self):
        engine = construct(word(seg("consonant", "b"), seg("vowel", "a"), seg("consonant", "t")), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "t"}, "action": "transform",
                         "where": {"prev": {"deps": {"prev": {"value": "b"}}}}, "outcomes": ["T"]})
        engine.init()
        assert engine.collect("underlying") == ["b", "a", "T"]

    @pytest.mark.parametrize("with_reader", [False, True])
    def test_later_segment_rewritten_once_during_init(self, with_reader):
        """A read into a segment that has not had its turn yet does not run its rules early."""
        engine = construct(word(seg("vowel", "a"), seg("consonant", "k"), seg("vowel", "i")), ["underlying"])
        if with_reader:
            engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                             "where": {"next_vowel": {"deps": {"prev_consonant": {"value": "zzz"}}}},
                             "outcomes": ["A"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "k"}, "action": "transform",
                         "outcomes": ["g"]})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "consonant", "value": "y"},
                         "action": "transform", "outcomes": ["z"]})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel", "value": "i"},
                         "action": "transform", "outcomes": [{"type": "consonant", "value": "y"}]})
        engine.init()
        assert engine.collect("underlying") == ["a", "g", "y"]
        i = engine.trackers[2]
        assert len(i.history[0]) == 2


# =============================================================================
# REACTIVE RECOMPUTATION
# =============================================================================

class TestReactiveRecomputation:

    def make_engine(self):
        engine = construct(word(seg("vowel", "a"), seg("vowel", "e"), seg("consonant", "k")), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                         "where": {"next_consonant": {"exists": True}}, "outcomes": ["A"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "k"}, "action": "transform",
                         "outcomes": ["k", {"type": "vowel", "value": "i"}], "weights": [1, 0]})
        engine.init()
        return engine

    def test_dependent_is_recorded(self):
        engine = self.make_engine()
        a, _, k = engine.trackers
        assert engine.collect("underlying") == ["A", "e", "k"]
        assert a.dependency(0, "next_consonant").node_id == k.node_id
        assert a in engine.manager.dependents_of(k, "underlying")

    def test_rewrite_of_provider_replays_dependent(self):
        engine = self.make_engine()
        _, _, k = engine.trackers
        assert engine.update_choice(k, "underlying", 1, 1) is True
        assert engine.collect("underlying") == ["a", "e", "i"]

    def test_confirming_choice_changes_nothing(self):
        engine = self.make_engine()
        _, _, k = engine.trackers
        history = k.history[0]
        before = (len(history), history.cursor)
        assert engine.update_choice(k, "underlying", 1, 0) is False
        assert (len(history), history.cursor) == before
        assert engine.collect("underlying") == ["A", "e", "k"]

    def test_update_choice_bounds(self):
        engine = self.make_engine()
        _, _, k = engine.trackers
        with pytest.raises(IndexError):
            engine.update_choice(k, "underlying", 5, 0)
        with pytest.raises(IndexError):
            engine.update_choice(k, "underlying", 1, 2)

    def test_replay_through_two_segments(self):
        engine = construct(word(seg("consonant", "b"), seg("vowel", "a"), seg("consonant", "t")), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "t"}, "action": "transform",
                         "where": {"prev": {"deps": {"prev": {"value": "b"}}}}, "outcomes": ["T"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "b"}, "action": "transform",
                         "outcomes": ["b", "p"], "weights": [1, 0]})
        engine.init()
        b, _, t = engine.trackers
        assert engine.collect("underlying") == ["b", "a", "T"]
        assert t in engine.manager.dependents_of(b, "underlying")

        engine.update_choice(b, "underlying", 1, 1)
        assert engine.collect("underlying") == ["p", "a", "t"]

    def test_switching_expansion_replays_neighbor(self):
        engine = construct(word(seg("consonant", "k"), seg("vowel", "a")), ["underlying", "phonic"])
        engine.add_rule({"layer": "underlying", "trigger": {"type": "consonant"}, "action": "expand",
                         "outcomes": {("s", "t"): 1, ("s", "u"): 0}})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"}, "action": "promote",
                         "outcomes": [{}]})
        engine.add_rule({"layer": "phonic", "trigger": {"type": "vowel"}, "action": "transform",
                         "where": {"prev": {"value": "t"}}, "outcomes": ["o"]})
        engine.init()
        k, _ = engine.trackers
        assert engine.collect("phonic") == ["s", "t", "o"]

        old = k.expansion(1)
        assert engine.update_choice(k, "phonic", 0, 1) is True
        assert engine.collect("phonic") == ["s", "u", "a"]
        assert not any(t.active for t in old)

        assert engine.update_choice(k, "phonic", 0, 0) is True
        assert engine.collect("phonic") == ["s", "t", "o"]

    def test_promote_alternative_drops_stale_future(self):
        engine = construct(word(seg("vowel", "a")), ["underlying", "phonic", "surface"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "promote",
                         "outcomes": ["a", "e"], "weights": [1, 0]})
        engine.add_rule({"layer": "phonic", "trigger": {"value": "a"}, "action": "promote",
                         "outcomes": ["aa"]})
        engine.init()
        assert engine.collect("surface") == ["aa"]

        tracker = engine.trackers[0]
        engine.update_choice(tracker, "phonic", 0, 1)
        assert engine.collect("phonic") == ["e"]
        assert engine.collect("surface") == [None]

    def test_skipped_segment_turning_into_filtered_type_replays_reader(self):
        engine = construct(word(seg("vowel", "a"), seg("consonant", "k"), seg("vowel", "i")), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                         "where": {"next_vowel": {"value": "i"}}, "outcomes": ["A"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "k"}, "action": "transform",
                         "outcomes": ["k", {"type": "vowel", "value": "e"}], "weights": [1, 0]})
        engine.init()
        a, k, i = engine.trackers
        assert engine.collect("underlying") == ["A", "k", "i"]
        assert a.dependency(0, "next_vowel").node_id == i.node_id

        engine.update_choice(k, "underlying", 1, 1)
        assert engine.collect("underlying") == ["a", "e", "i"]
        assert a.dependency(0, "next_vowel").node_id == k.node_id

    def test_discarded_alternative_leaves_no_dependency_records(self):
        engine = construct(word(seg("consonant", "k"), seg("vowel", "a")), ["underlying", "phonic"])
        engine.add_rule({"layer": "underlying", "trigger": {"type": "consonant"}, "action": "expand",
                         "outcomes": {("s", "t"): 1, ("s", "u"): 0}})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"}, "action": "promote",
                         "outcomes": [{}]})
        engine.add_rule({"layer": "phonic", "trigger": {"type": "vowel"}, "action": "transform",
                         "where": {"prev": {"value": "t"}}, "outcomes": ["o"]})
        engine.init()
        k, _ = engine.trackers
        graph = engine.manager.context.graph
        first = list(k.expansion(1))
        assert any(graph.dependents(t.node_id, 1) for t in first)

        engine.update_choice(k, "phonic", 0, 1)
        second = list(k.expansion(1))
        for tracker in first:
            assert graph.dependents(tracker.node_id, 1) == []
            assert graph.providers(tracker.node_id, 1) == []
            assert tracker.cached(1) == {}

        engine.update_choice(k, "phonic", 0, 0)
        assert engine.collect("phonic") == ["s", "t", "o"]
        for tracker in second:
            assert graph.dependents(tracker.node_id, 1) == []

    def test_insert_segment_replays_neighbors(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"}, "action": "transform",
                         "where": {"prev": {"type": "consonant"}}, "outcomes": ["e"]})
        engine.init()
        assert engine.collect("underlying") == ["a"]

        anchor = engine.trackers[0]
        inserted = engine.insert_segment(anchor, seg("consonant", "t"), before=True)
        assert engine.collect("underlying") == ["t", "e"]
        assert engine.trackers[0] is inserted

    def test_insert_segment_inside_expansion(self):
        engine = construct(word(seg("consonant", "k"), seg("vowel", "a")), ["underlying", "phonic"])
        engine.add_rule({"layer": "underlying", "trigger": {"type": "consonant"}, "action": "expand",
                         "outcomes": [["s"]]})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"}, "action": "promote",
                         "outcomes": [{}]})
        engine.add_rule({"layer": "phonic", "trigger": {"type": "vowel"}, "action": "transform",
                         "where": {"prev": {"value": "t"}}, "outcomes": ["o"]})
        engine.init()
        assert engine.collect("phonic") == ["s", "a"]

        nested = engine.trackers[0].expansion(1)
        engine.insert_segment(nested.tail, "t")
        assert engine.collect("phonic") == ["s", "t", "o"]


# =============================================================================
# EXPANSION ARITY
# =============================================================================

class TestExpansionArity:

    @pytest.mark.parametrize("arity", [1, 2, 3, 5])
    def test_arity_independent_of_siblings(self, arity):
        engine = construct(
            word(seg("vowel", "a"), seg("consonant", "k"), seg("vowel", "o")),
            ["underlying", "phonic"],
        )
        engine.add_rule({"layer": "underlying", "trigger": {"value": "k"}, "action": "expand",
                         "outcomes": [["x"] * arity]})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"}, "action": "expand",
                         "outcomes": [["v", "v"]]})
        engine.init()

        k = engine.trackers[1]
        assert len(k.expansion(1)) == arity
        assert engine.collect("phonic") == ["v", "v"] + ["x"] * arity + ["v", "v"]

    def test_empty_expansion(self):
        engine = construct(word(seg("vowel", "a"), seg("consonant", "h"), seg("vowel", "i")),
                           ["underlying", "phonic"])
        engine.add_rule({"layer": "underlying", "trigger": {"value": "h"}, "action": "expand", "outcomes": [[]]})
        engine.add_rule({"layer": "underlying", "trigger": {"type": "vowel"}, "action": "promote", "outcomes": [{}]})
        engine.init()
        a, h, i = engine.trackers
        assert engine.collect("phonic") == ["a", "i"]
        assert h.expansion(1).is_empty
        assert a.dependency(1, "next").value == "i"


# =============================================================================
# ERRORS AND LIFECYCLE
# =============================================================================

class TestErrors:

    def test_unknown_layer(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        with pytest.raises(ConfigurationError, match="Unknown layer"):
            engine.add_rule({"layer": "surface", "action": "transform", "outcomes": ["x"]})

    def test_duplicate_layers(self):
        with pytest.raises(ConfigurationError):
            construct(word(), ["underlying", "underlying"])

    def test_no_layers(self):
        with pytest.raises(ConfigurationError):
            construct(word(), [])

    def test_registry_frozen_after_init(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        engine.init()
        with pytest.raises(RegistryFrozen):
            engine.add_rule({"layer": "underlying", "action": "transform", "outcomes": ["x"]})

    def test_collect_before_init(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        with pytest.raises(EngineError):
            engine.collect("underlying")

    def test_unknown_dependency_kind_in_precondition(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"])
        engine.add_rule({"layer": "underlying", "action": "transform", "outcomes": ["x"],
                         "where": {"next_syllable": {"exists": True}}})
        with pytest.raises(UnknownDependencyKind):
            engine.init()

    def test_oscillating_rules_hit_cascade_limit(self):
        engine = construct(word(seg("consonant", "p"), seg("consonant", "q")), ["underlying"],
                           config=EngineConfig(max_cascade_steps=50))
        engine.add_rule({"layer": "underlying", "trigger": {"value": "p"}, "action": "transform",
                         "where": {"next": {"value": "q"}}, "outcomes": ["P"]})
        engine.add_rule({"layer": "underlying", "trigger": {"value": "q"}, "action": "transform",
                         "where": {"prev": {"value": "P"}}, "outcomes": ["Q"]})
        with pytest.raises(CascadeLimitExceeded):
            engine.init()

    def test_replay_source_exhausted(self):
        engine = construct(word(seg("vowel", "a")), ["underlying"],
                           chooser=WeightedChoiceSource.replay([]))
        engine.add_rule({"layer": "underlying", "trigger": {"value": "a"}, "action": "transform",
                         "outcomes": ["e", "i"]})
        with pytest.raises(ChoicesExhausted):
            engine.init()

    def test_string_layers_rejected(self):
        with pytest.raises(ConfigurationError):
            construct(word(), "underlying")
