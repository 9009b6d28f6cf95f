"""Tests for structural conflicts and resolution strategies."""

import random

import pytest

from belief_mesh.beliefs import (
    AuthorityRanking,
    ConflictStrategy,
    are_conflicting,
    resolve_all_conflicts,
    resolve_conflict,
    structural_shape,
    validate_belief_set,
)
from belief_mesh.beliefs.conflicts import LEAF


class TestStructuralShape:
    """Tests for structural_shape."""

    def test_scalar_becomes_placeholder(self):
        assert structural_shape(42) == LEAF
        assert structural_shape("text") == LEAF
        assert structural_shape(None) == LEAF

    def test_dict_keeps_keys(self):
        assert structural_shape({"a": 1, "b": {"c": "x"}}) == {"a": LEAF, "b": {"c": LEAF}}

    def test_list_and_tuple_keep_type_and_length(self):
        assert structural_shape([1, 2]) == [LEAF, LEAF]
        assert structural_shape((1, "x")) == (LEAF, LEAF)
        assert structural_shape([1, 2]) != structural_shape((1, 2))

    def test_set_collapses_to_size(self):
        assert structural_shape({1, 2, 3}) == ("<set>", 3)
        assert structural_shape(frozenset({"a"})) == ("<set>", 1)


class TestAreConflicting:
    """Tests for are_conflicting."""

    def test_same_shape_different_content(self, make_atom):
        assert are_conflicting(make_atom("a", {"door": "open"}), make_atom("b", {"door": "closed"}))

    def test_different_keys(self, make_atom):
        assert not are_conflicting(make_atom("a", {"door": "open"}), make_atom("b", {"window": "open"}))

    def test_identical_content(self, make_atom):
        assert not are_conflicting(make_atom("a", [1, 2]), make_atom("b", [1, 2]))

    def test_different_list_lengths(self, make_atom):
        assert not are_conflicting(make_atom("a", [1, 2]), make_atom("b", [1, 2, 3]))


class TestResolveConflict:
    """Tests for each resolution strategy."""

    def test_highest_confidence(self, make_atom):
        a = make_atom("x", {"v": 1}, 0.4)
        b = make_atom("x", {"v": 2}, 0.9)
        assert resolve_conflict(a, b, ConflictStrategy.HIGHEST_CONFIDENCE) is b

    def test_highest_confidence_tie_keeps_first(self, make_atom):
        a = make_atom("x", {"v": 1}, 0.5)
        b = make_atom("x", {"v": 2}, 0.5)
        assert resolve_conflict(a, b, ConflictStrategy.HIGHEST_CONFIDENCE) is a

    def test_newest(self, make_atom):
        older = make_atom("x", {"v": 1}, 0.9, at=1)
        newer = make_atom("x", {"v": 2}, 0.1, at=2)
        assert resolve_conflict(older, newer, ConflictStrategy.NEWEST) is newer
        assert resolve_conflict(newer, older, ConflictStrategy.NEWEST) is newer

    def test_newest_tie_takes_second(self, make_atom):
        a = make_atom("x", {"v": 1}, at=1)
        b = make_atom("x", {"v": 2}, at=1)
        assert resolve_conflict(a, b, ConflictStrategy.NEWEST) is b

    def test_authority_default_ranks_tie_to_first(self, make_atom):
        a = make_atom("x", {"v": 1}, source="agent_a")
        b = make_atom("x", {"v": 2}, source="agent_b")
        assert resolve_conflict(a, b, ConflictStrategy.AUTHORITY) is a

    def test_authority_ranking(self, make_atom):
        a = make_atom("x", {"v": 1}, source="intern")
        b = make_atom("x", {"v": 2}, source="lead")
        ranking = AuthorityRanking(ranks={"lead": 10, "intern": 1})
        assert resolve_conflict(a, b, ConflictStrategy.AUTHORITY, authority=ranking) is b

    def test_merge_builds_new_atom(self, make_atom):
        a = make_atom("x", {"v": 1}, 0.4, metadata={"k": "a", "only_a": 1}, tags={"red"})
        b = make_atom("y", {"v": 2}, 0.8, source="agent_b", metadata={"k": "b"}, tags={"blue"})
        merged = resolve_conflict(a, b, ConflictStrategy.MERGE)

        assert merged.id == "x"
        assert merged.content == {"v": 1}
        assert merged.source == "agent_a"
        assert merged.confidence == pytest.approx(0.6)
        assert merged.metadata == {"k": "b", "only_a": 1}
        assert merged.tags == frozenset({"red", "blue"})
        assert merged.timestamp > a.timestamp

    @pytest.mark.parametrize("strategy", [None, "bogus"])
    def test_unknown_strategy_falls_back(self, make_atom, strategy):
        a = make_atom("x", {"v": 1}, 0.2)
        b = make_atom("x", {"v": 2}, 0.7)
        assert resolve_conflict(a, b, strategy) is b

    def test_strategy_by_name(self, make_atom):
        a = make_atom("x", {"v": 1}, at=5)
        b = make_atom("x", {"v": 2}, at=1)
        assert resolve_conflict(a, b, "newest") is a

    def test_probabilistic_frequency(self, make_atom):
        """Winner frequency follows the confidence ratio (chi-square, 1 dof)."""
        a = make_atom("x", {"v": 1}, 0.75)
        b = make_atom("x", {"v": 2}, 0.25)
        rng = random.Random(1234)
        trials = 4000

        wins_a = sum(
            resolve_conflict(a, b, ConflictStrategy.PROBABILISTIC, rng=rng) is a
            for _ in range(trials)
        )
        expected_a, expected_b = trials * 0.75, trials * 0.25
        chi_square = (
            (wins_a - expected_a) ** 2 / expected_a
            + (trials - wins_a - expected_b) ** 2 / expected_b
        )
        # 99.9th percentile of chi-square with one degree of freedom
        assert chi_square < 10.83

    def test_probabilistic_zero_confidence_is_fair(self, make_atom):
        a = make_atom("x", {"v": 1}, 0.0)
        b = make_atom("x", {"v": 2}, 0.0)
        rng = random.Random(7)
        trials = 2000

        wins_a = sum(
            resolve_conflict(a, b, ConflictStrategy.PROBABILISTIC, rng=rng) is a
            for _ in range(trials)
        )
        assert 0.45 < wins_a / trials < 0.55

    def test_probabilistic_is_reproducible(self, make_atom):
        a = make_atom("x", {"v": 1}, 0.5)
        b = make_atom("x", {"v": 2}, 0.5)
        runs = []
        for _ in range(2):
            rng = random.Random(99)
            runs.append([
                resolve_conflict(a, b, "probabilistic", rng=rng) is a for _ in range(20)
            ])
        assert runs[0] == runs[1]


class TestParseStrategy:
    """Tests for ConflictStrategy.parse."""

    def test_parse_known(self):
        assert ConflictStrategy.parse("merge") is ConflictStrategy.MERGE
        assert ConflictStrategy.parse(ConflictStrategy.NEWEST) is ConflictStrategy.NEWEST

    def test_parse_unknown_warns(self, caplog):
        with caplog.at_level("WARNING"):
            assert ConflictStrategy.parse("loudest") is ConflictStrategy.HIGHEST_CONFIDENCE
        assert "loudest" in caplog.text


class TestWholeSetResolution:
    """Tests for validate_belief_set and resolve_all_conflicts."""

    def test_validate_clean_set(self, make_set, make_atom):
        belief_set = make_set("a", make_atom("b1", {"door": "open"}), make_atom("b2", "x"))
        assert validate_belief_set(belief_set) == (True, [])

    def test_validate_reports_conflicts(self, make_set, make_atom):
        belief_set = make_set("a", make_atom("b1", {"v": 1}), make_atom("b2", {"v": 2}))
        ok, conflicts = validate_belief_set(belief_set)

        assert ok is False
        assert len(conflicts) == 1

    def test_resolve_all_conflicts(self, make_set, make_atom):
        belief_set = make_set(
            "a",
            make_atom("b1", {"v": 1}, 0.9),
            make_atom("b2", {"v": 2}, 0.5),
            make_atom("b3", {"v": 3}, 0.3),
            make_atom("b4", "unrelated", 0.1),
        )
        resolved = resolve_all_conflicts(belief_set)

        assert resolved.ids() == {"b1", "b4"}
        assert validate_belief_set(resolved) == (True, [])
        assert len(belief_set) == 4
