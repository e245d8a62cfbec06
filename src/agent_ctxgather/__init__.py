"""
agent-ctxgather: Context gathering, caching and prioritization for AI chat

Before each model call, fans out to pluggable context providers, ranks
their fragments by relevance, trims them to a token budget and caches
the result:
- Concurrent, failure-isolated provider fan-out with deadlines
- Multiplicative relevance scoring (weight x trigger affinity x recency)
- Greedy token-budget selection
- Bounded TTL cache with FIFO eviction under a memory ceiling

Usage:
    from agent_ctxgather import ContextManager, StaticProvider

    manager = ContextManager("./ctxgather.yaml")
    manager.register_provider(StaticProvider("profile", {"plan": "pro"}))

    result = await manager.gather_context(trigger="user-prompt", token_budget=2000)
"""

from .config import ManagerConfig, CacheConfig, ProviderConfig
from .manager import ContextManager, ManagerDestroyedError
from .cache import BoundedCache
from .prioritizer import Prioritizer
from .budget import BudgetSelector, BudgetSelection
from .providers import (
    ContextProvider,
    StaticProvider,
    CallableProvider,
    JsonFileProvider,
)
from .types import (
    Trigger,
    ContextFragment,
    ScoredFragment,
    GatherOptions,
    GatherResult,
    CacheEntry,
    CacheStats,
    ManagerStats,
)

__version__ = "0.1.0"
__all__ = [
    "ContextManager",
    "ManagerDestroyedError",
    "ManagerConfig",
    "CacheConfig",
    "ProviderConfig",
    "BoundedCache",
    "Prioritizer",
    "BudgetSelector",
    "BudgetSelection",
    "ContextProvider",
    "StaticProvider",
    "CallableProvider",
    "JsonFileProvider",
    "Trigger",
    "ContextFragment",
    "ScoredFragment",
    "GatherOptions",
    "GatherResult",
    "CacheEntry",
    "CacheStats",
    "ManagerStats",
]
