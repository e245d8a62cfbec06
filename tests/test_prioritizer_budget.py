"""Tests for relevance scoring and token budget selection."""

import random

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from agent_ctxgather import (
    BudgetSelector,
    ContextFragment,
    Prioritizer,
    ScoredFragment,
    Trigger,
)


NOW = 1_700_000_000.0


def frag(provider, age_ms=0.0, payload=None):
    return ContextFragment(
        provider=provider,
        timestamp=NOW - age_ms / 1000.0,
        payload=payload if payload is not None else {"v": provider},
    )


def padded(tokens, chars_per_token=4):
    """Payload whose serialized form costs exactly `tokens` tokens."""
    # json.dumps({"text": s}) is len(s) + 12 characters
    return {"text": "x" * (tokens * chars_per_token - 12)}


class TestPrioritizer:
    """Test multiplicative relevance scoring."""

    @pytest.fixture
    def prioritizer(self):
        p = Prioritizer(recency_half_life_ms=1000.0, default_affinity=0.5, clock=lambda: NOW)
        p.register("dom", weight=1.0, triggers=[Trigger.USER_PROMPT])
        p.register("form", weight=0.8)
        p.register("viewport", weight=0.5, triggers=[Trigger.PROACTIVE, Trigger.USER_PROMPT])
        return p

    def test_fresh_fragment_scores_product_of_factors(self, prioritizer):
        scored = prioritizer.score([frag("dom")], Trigger.USER_PROMPT)
        assert scored[0].score == pytest.approx(1.0)

        scored = prioritizer.score([frag("form")], Trigger.USER_PROMPT)
        assert scored[0].score == pytest.approx(0.8 * 0.5)

    def test_recency_half_life(self, prioritizer):
        scored = prioritizer.score([frag("dom", age_ms=1000.0)], Trigger.USER_PROMPT)
        assert scored[0].score == pytest.approx(0.5)

        scored = prioritizer.score([frag("dom", age_ms=2000.0)], Trigger.USER_PROMPT)
        assert scored[0].score == pytest.approx(0.25)

    def test_future_timestamp_counts_as_fresh(self, prioritizer):
        scored = prioritizer.score([frag("dom", age_ms=-5000.0)], Trigger.USER_PROMPT)
        assert scored[0].score == pytest.approx(1.0)

    def test_sorted_descending(self, prioritizer):
        fragments = [frag("viewport"), frag("form"), frag("dom")]
        scored = prioritizer.score(fragments, Trigger.USER_PROMPT)
        assert [s.source for s in scored] == ["dom", "viewport", "form"]
        scores = [s.score for s in scored]
        assert scores == sorted(scores, reverse=True)

    def test_ties_follow_registration_order(self):
        p = Prioritizer(clock=lambda: NOW)
        for name in ("c", "a", "b"):
            p.register(name)
        scored = p.score([frag("a"), frag("b"), frag("c")], "proactive")
        assert [s.source for s in scored] == ["c", "a", "b"]

    def test_reregister_keeps_position(self):
        p = Prioritizer(clock=lambda: NOW)
        p.register("first")
        p.register("second")
        p.register("first", weight=1.0)
        scored = p.score([frag("second"), frag("first")], "proactive")
        assert [s.source for s in scored] == ["first", "second"]

    def test_unknown_provider_sorts_last_on_tie(self, prioritizer):
        scored = prioritizer.score([frag("stranger"), frag("viewport")], Trigger.USER_PROMPT)
        # stranger: 1.0 * 0.5; viewport: 0.5 * 1.0
        assert [s.source for s in scored] == ["viewport", "stranger"]

    def test_trigger_affinity_changes_ranking(self, prioritizer):
        fragments = [frag("dom"), frag("viewport")]
        proactive = prioritizer.score(fragments, "proactive")
        # dom: 1.0 * 0.5, viewport: 0.5 * 1.0 -> tie, registration order
        assert proactive[0].score == pytest.approx(proactive[1].score)
        assert proactive[0].source == "dom"

    def test_snapshot_ignores_later_unregister(self, prioritizer):
        snap = prioritizer.snapshot()
        prioritizer.unregister("form")
        prioritizer.unregister("dom")

        scored = snap.score([frag("form"), frag("dom")], Trigger.USER_PROMPT)
        assert [sf.source for sf in scored] == ["dom", "form"]
        assert scored[1].score == pytest.approx(0.8 * 0.5)
        assert prioritizer.weight("form") == 1.0

    def test_filter(self, prioritizer):
        scored = prioritizer.score(
            [frag("dom"), frag("form"), frag("viewport")], Trigger.USER_PROMPT
        )
        kept = prioritizer.filter(scored, 0.45)
        assert [s.source for s in kept] == ["dom", "viewport"]
        assert prioritizer.filter(scored, 0.0) == scored

    def test_empty_input(self, prioritizer):
        assert prioritizer.score([], Trigger.PROACTIVE) == []

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            Prioritizer(recency_half_life_ms=0)
        with pytest.raises(ValueError):
            Prioritizer(default_affinity=1.5)
        with pytest.raises(ValueError):
            Prioritizer().register("x", weight=2.0)

    def test_unknown_trigger(self, prioritizer):
        with pytest.raises(ValueError):
            prioritizer.score([frag("dom")], "telepathy")


class TestBudgetSelector:
    """Test greedy token budget selection."""

    @pytest.fixture
    def selector(self):
        return BudgetSelector(chars_per_token=4)

    def scored(self, selector, costs):
        return [
            ScoredFragment(
                fragment=frag(f"p{i}", payload=padded(cost)),
                score=1.0 - i * 0.1,
            )
            for i, cost in enumerate(costs)
        ]

    def test_estimate_tokens(self, selector):
        assert selector.estimate_tokens(frag("x", payload=padded(300))) == 300
        # '{}' -> 2 chars -> 1 token
        assert selector.estimate_tokens(frag("x", payload={})) == 1

    def test_estimate_is_deterministic_across_key_order(self, selector):
        a = frag("x", payload={"a": 1, "b": 2})
        b = frag("x", payload={"b": 2, "a": 1})
        assert selector.estimate_tokens(a) == selector.estimate_tokens(b)

    def test_skip_overflowing_fragment_and_continue(self, selector):
        scored = self.scored(selector, [300, 250, 100])
        selection = selector.select(scored, 500)
        assert [s.source for s in selection.selected] == ["p0", "p2"]
        assert [s.source for s in selection.skipped] == ["p1"]
        assert selection.total_tokens == 400

    def test_exact_fit(self, selector):
        scored = self.scored(selector, [200, 300])
        selection = selector.select(scored, 500)
        assert selection.total_tokens == 500
        assert len(selection.selected) == 2

    def test_zero_budget(self, selector):
        selection = selector.select(self.scored(selector, [10, 20]), 0)
        assert selection.selected == []
        assert selection.total_tokens == 0

    def test_negative_budget(self, selector):
        with pytest.raises(ValueError):
            selector.select([], -1)

    def test_budget_safety(self, selector):
        rng = random.Random(42)
        for _ in range(50):
            costs = [rng.randint(1, 400) for _ in range(rng.randint(0, 8))]
            budget = rng.randint(0, 1000)
            selection = selector.select(self.scored(selector, costs), budget)
            assert selection.total_tokens <= budget
            assert selection.total_tokens == sum(
                selector.estimate_tokens(s.fragment) for s in selection.selected
            )

    def test_annotate_and_total(self, selector):
        annotated = selector.annotate(self.scored(selector, [30, 70]))
        assert [s.tokens for s in annotated] == [30, 70]
        assert selector.total(annotated) == 100

    def test_invalid_chars_per_token(self):
        with pytest.raises(ValueError):
            BudgetSelector(chars_per_token=0)
