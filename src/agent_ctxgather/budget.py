"""Token budget selection for gathered context."""

import json
import math
from dataclasses import dataclass, field, replace
from typing import List

from .types import ContextFragment, ScoredFragment


@dataclass
class BudgetSelection:
    """Result of budget selection."""
    selected: List[ScoredFragment]
    total_tokens: int
    skipped: List[ScoredFragment] = field(default_factory=list)


class BudgetSelector:
    """
    Fills a token budget with the highest-scoring fragments.

    Greedy in score order: a fragment that would overflow the budget is
    skipped whole and scanning continues, so a smaller lower-scored
    fragment can still fit. Budget-safe, not optimal.
    """

    def __init__(self, chars_per_token: int = 4):
        """
        Args:
            chars_per_token: Characters of serialized payload per token
        """
        if chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be > 0, got {chars_per_token}")
        self.chars_per_token = chars_per_token

    def estimate_tokens(self, fragment: ContextFragment) -> int:
        """
        Estimate token cost of a fragment.

        ceil(len(serialized payload) / chars_per_token). Deterministic:
        keys are sorted and unknown types go through str().
        """
        text = json.dumps(fragment.payload, sort_keys=True, default=str)
        return math.ceil(len(text) / self.chars_per_token)

    def annotate(self, scored: List[ScoredFragment]) -> List[ScoredFragment]:
        """Attach token estimates to scored fragments."""
        return [
            replace(sf, tokens=self.estimate_tokens(sf.fragment))
            for sf in scored
        ]

    def select(
        self,
        scored: List[ScoredFragment],
        token_budget: int,
    ) -> BudgetSelection:
        """
        Select fragments that fit the budget.

        Args:
            scored: Fragments sorted by score (descending)
            token_budget: Maximum total tokens

        Returns:
            BudgetSelection with selected fragments (input order kept)
        """
        if token_budget < 0:
            raise ValueError(f"token_budget must be >= 0, got {token_budget}")

        selected = []
        skipped = []
        total_tokens = 0

        for sf in scored:
            tokens = sf.tokens or self.estimate_tokens(sf.fragment)

            # Check if it fits
            if total_tokens + tokens <= token_budget:
                selected.append(sf)
                total_tokens += tokens
            else:
                skipped.append(sf)

        return BudgetSelection(
            selected=selected,
            total_tokens=total_tokens,
            skipped=skipped,
        )

    def total(self, scored: List[ScoredFragment]) -> int:
        """Total estimated tokens, no budget applied."""
        return sum(sf.tokens or self.estimate_tokens(sf.fragment) for sf in scored)
