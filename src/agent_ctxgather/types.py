"""Core data types for context gathering."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class Trigger(str, Enum):
    """Reason a gather was requested. Biases relevance scoring."""
    PROACTIVE = "proactive"
    USER_PROMPT = "user-prompt"
    USER_ACTION = "user-action"
    NAVIGATION = "navigation"
    MANUAL = "manual"

    @classmethod
    def coerce(cls, value: Union["Trigger", str]) -> "Trigger":
        """Accept a Trigger or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown trigger '{value}' (expected one of: {valid})")


@dataclass(frozen=True)
class ContextFragment:
    """One provider's contribution to a single gather cycle."""
    provider: str
    timestamp: float  # epoch seconds
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }


@dataclass(frozen=True)
class ScoredFragment:
    """Fragment with relevance score and estimated token cost."""
    fragment: ContextFragment
    score: float
    tokens: int = 0

    @property
    def source(self) -> str:
        return self.fragment.provider


@dataclass
class GatherOptions:
    """
    Options for a single gather_context() call.

    trigger=None means "use the manager's default trigger".
    provider_names restricts the fan-out to the named providers.
    """
    min_relevance: float = 0.0
    trigger: Optional[Union[Trigger, str]] = None
    token_budget: Optional[int] = None
    cache_key: Optional[str] = None
    force_refresh: bool = False
    provider_names: Optional[List[str]] = None

    def __post_init__(self):
        if not 0.0 <= self.min_relevance <= 1.0:
            raise ValueError(f"min_relevance must be in [0, 1], got {self.min_relevance}")
        if self.token_budget is not None and self.token_budget < 0:
            raise ValueError(f"token_budget must be >= 0, got {self.token_budget}")
        if self.trigger is not None:
            self.trigger = Trigger.coerce(self.trigger)


@dataclass(frozen=True)
class GatherResult:
    """Result of gather_context(). Callers must not mutate it."""
    contexts: Tuple[ScoredFragment, ...]
    total_tokens: int
    cached: bool
    errors: int
    gather_time_ms: float = 0.0
    cache_key: str = ""
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contexts": [
                {**sf.fragment.to_dict(), "score": sf.score, "tokens": sf.tokens}
                for sf in self.contexts
            ],
            "total_tokens": self.total_tokens,
            "cached": self.cached,
            "errors": self.errors,
            "gather_time_ms": self.gather_time_ms,
            "cache_key": self.cache_key,
            "timestamp": self.timestamp,
        }


@dataclass
class CacheEntry:
    """A cached gather result. Owned by BoundedCache."""
    key: str
    result: GatherResult
    inserted_at: float  # epoch seconds
    ttl_ms: int
    size_bytes: int
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return (now - self.inserted_at) * 1000.0 > self.ttl_ms


@dataclass
class CacheStats:
    """Snapshot of cache counters."""
    size: int = 0
    memory_usage_mb: float = 0.0
    hit_rate: float = 0.0
    hits: int = 0
    misses: int = 0
    evictions: int = 0


@dataclass
class ManagerStats:
    """Counters scoped to one ContextManager instance."""
    total_gatherings: int = 0
    total_errors: int = 0
    avg_gather_time_ms: float = 0.0
    providers: int = 0
    enabled_providers: int = 0
    cache: CacheStats = field(default_factory=CacheStats)

    @property
    def size(self) -> int:
        return self.cache.size

    @property
    def memory_usage_mb(self) -> float:
        return self.cache.memory_usage_mb

    @property
    def hit_rate(self) -> float:
        return self.cache.hit_rate

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
