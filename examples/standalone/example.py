#!/usr/bin/env python3
"""
Standalone example of agent-ctxgather usage.

Run from this directory:
    python example.py
"""

import asyncio
import random
from pathlib import Path
import sys

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from agent_ctxgather import (
    CallableProvider,
    ContextManager,
    ContextProvider,
    ManagerConfig,
    StaticProvider,
)


class FlakyProvider(ContextProvider):
    """Fails half the time, to show partial results."""

    async def gather(self):
        await asyncio.sleep(0.01)
        if random.random() < 0.5:
            raise ConnectionError("backend unavailable")
        return self.fragment({"recent_clicks": ["#add-to-cart", "#checkout"]})


async def main():
    config = ManagerConfig.from_dict({
        "cache": {"ttl_ms": 5000, "max_size_mb": 1},
        "default_trigger": "user-prompt",
        "provider_weights": {"viewport": 0.4},
        "provider_timeout_ms": 200,
    })
    manager = ContextManager(config)

    print("=== agent-ctxgather Example ===\n")

    # Register providers
    manager.register_provider(StaticProvider(
        "page",
        {"title": "Checkout", "headings": ["Cart", "Shipping", "Payment"]},
        relevant_triggers=["user-prompt", "proactive"],
    ))
    manager.register_provider(CallableProvider(
        "viewport",
        lambda: {"width": 1280, "height": 800, "scroll_pct": 35},
    ))
    manager.register_provider(FlakyProvider(
        "actions",
        relevant_triggers=["user-action", "user-prompt"],
    ))
    print(f"Providers: {', '.join(manager.provider_names())}\n")

    # Fresh gather
    result = await manager.gather_context(token_budget=200)
    print(f"Fresh gather: {len(result.contexts)} contexts, "
          f"{result.total_tokens} tokens, {result.errors} errors, "
          f"{result.gather_time_ms:.2f} ms")
    for sf in result.contexts:
        print(f"  [{sf.source}] score={sf.score:.2f} tokens={sf.tokens}")

    # Same options again: served from cache
    cached = await manager.gather_context(token_budget=200)
    print(f"\nRepeat gather: cached={cached.cached}, {cached.gather_time_ms:.3f} ms")

    # Stats
    stats = manager.get_stats()
    print(f"\nGatherings: {stats.total_gatherings}")
    print(f"Provider errors: {stats.total_errors}")
    print(f"Cache: {stats.size} entries, {stats.memory_usage_mb * 1024:.2f} KB, "
          f"hit rate {stats.hit_rate:.0%}")

    manager.destroy()
    print("\n✓ Done!")


if __name__ == "__main__":
    asyncio.run(main())
