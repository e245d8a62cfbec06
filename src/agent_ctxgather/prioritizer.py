"""Relevance scoring for gathered context fragments."""

import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from .types import ContextFragment, ScoredFragment, Trigger


class Prioritizer:
    """
    Multiplicative relevance scoring for context fragments.

    score = provider_weight x trigger_affinity x recency_decay

    - provider_weight: static priority per provider, default 1.0
    - trigger_affinity: 1.0 if the provider declared the trigger,
      `default_affinity` otherwise
    - recency_decay: 0.5 ** (age_ms / half_life_ms), so a fragment
      gathered at scoring time gets 1.0

    Every factor is in [0, 1], so the score is too.
    """

    def __init__(
        self,
        recency_half_life_ms: float = 30000.0,
        default_affinity: float = 0.5,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize prioritizer.

        Args:
            recency_half_life_ms: Age at which recency decay reaches 0.5
            default_affinity: Affinity for providers that did not declare
                the current trigger
            clock: Time source in epoch seconds (default: time.time)
        """
        if recency_half_life_ms <= 0:
            raise ValueError(f"recency_half_life_ms must be > 0, got {recency_half_life_ms}")
        if not 0.0 <= default_affinity <= 1.0:
            raise ValueError(f"default_affinity must be in [0, 1], got {default_affinity}")

        self.recency_half_life_ms = recency_half_life_ms
        self.default_affinity = default_affinity
        self._clock = clock or time.time

        # provider name -> weight / declared triggers / registration order
        self._weights: Dict[str, float] = {}
        self._affinities: Dict[str, Set[Trigger]] = {}
        self._order: Dict[str, int] = {}
        self._next_order = 0

    def register(
        self,
        name: str,
        weight: float = 1.0,
        triggers: Iterable[Trigger] = (),
    ):
        """
        Record a provider's weight and declared triggers.

        Re-registering keeps the original position in the tie-break order.
        """
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"Weight for '{name}' must be in [0, 1], got {weight}")
        self._weights[name] = weight
        self._affinities[name] = set(triggers)
        if name not in self._order:
            self._order[name] = self._next_order
            self._next_order += 1

    def unregister(self, name: str):
        self._weights.pop(name, None)
        self._affinities.pop(name, None)
        self._order.pop(name, None)

    def clear(self):
        self._weights.clear()
        self._affinities.clear()
        self._order.clear()
        self._next_order = 0

    def snapshot(self) -> "Prioritizer":
        """Copy of the current registry, unaffected by later (un)registration."""
        copy = Prioritizer(
            recency_half_life_ms=self.recency_half_life_ms,
            default_affinity=self.default_affinity,
            clock=self._clock,
        )
        copy._weights = dict(self._weights)
        copy._affinities = {name: set(t) for name, t in self._affinities.items()}
        copy._order = dict(self._order)
        copy._next_order = self._next_order
        return copy

    def weight(self, name: str) -> float:
        return self._weights.get(name, 1.0)

    def affinity(self, name: str, trigger: Trigger) -> float:
        if trigger in self._affinities.get(name, ()):
            return 1.0
        return self.default_affinity

    def recency(self, fragment: ContextFragment, now: float) -> float:
        """Exponential decay by fragment age. Future timestamps count as age 0."""
        age_ms = max(0.0, (now - fragment.timestamp) * 1000.0)
        return 0.5 ** (age_ms / self.recency_half_life_ms)

    def score(
        self,
        fragments: List[ContextFragment],
        trigger: Trigger,
        now: Optional[float] = None,
    ) -> List[ScoredFragment]:
        """
        Score fragments and sort them by relevance.

        Args:
            fragments: Fragments from one gather cycle
            trigger: Trigger of the current gather
            now: Scoring time (default: clock)

        Returns:
            ScoredFragments sorted by score descending; ties keep provider
            registration order
        """
        if not fragments:
            return []

        now = self._clock() if now is None else now
        trigger = Trigger.coerce(trigger)

        scored = []
        for frag in fragments:
            value = (
                self.weight(frag.provider)
                * self.affinity(frag.provider, trigger)
                * self.recency(frag, now)
            )
            scored.append(ScoredFragment(fragment=frag, score=min(1.0, max(0.0, value))))

        unknown = len(self._order)
        scored.sort(key=lambda sf: (-sf.score, self._order.get(sf.source, unknown)))
        return scored

    def filter(
        self,
        scored: List[ScoredFragment],
        min_relevance: float,
    ) -> List[ScoredFragment]:
        """Keep fragments scoring at least min_relevance. Order is preserved."""
        return [sf for sf in scored if sf.score >= min_relevance]

    def get_weights(self) -> Dict[str, float]:
        """Get current provider weights."""
        return self._weights.copy()
