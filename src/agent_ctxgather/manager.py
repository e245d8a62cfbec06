"""
Context Manager for agent-ctxgather.

Central orchestrator for context gathering:
- Provider registry (insertion order = tie-break order)
- Concurrent fan-out with per-provider deadlines
- Relevance scoring and token-budget selection
- Bounded result cache with TTL
- In-flight coalescing of identical gathers
- Statistics, events and JSONL activity logging

Usage:
    from agent_ctxgather import ContextManager, StaticProvider

    manager = ContextManager()
    manager.register_provider(StaticProvider("profile", {"plan": "pro"}))

    # Before each model call
    result = await manager.gather_context(trigger="user-prompt", token_budget=2000)
    for sf in result.contexts:
        print(sf.source, sf.score, sf.fragment.payload)

    # Teardown
    manager.destroy()
"""

import asyncio
import sys
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .budget import BudgetSelector
from .cache import BoundedCache
from .config import ManagerConfig
from .logger import GatherLogger
from .prioritizer import Prioritizer
from .types import (
    CacheStats,
    ContextFragment,
    GatherOptions,
    GatherResult,
    ManagerStats,
    Trigger,
)


# Event names passed to subscribe() listeners
EVENT_GATHERED = "context-gathered"
EVENT_PROVIDER_ERROR = "provider-error"
EVENT_CACHE_HIT = "cache-hit"
EVENT_CACHE_MISS = "cache-miss"

Listener = Callable[[str, Any], None]


class ManagerDestroyedError(RuntimeError):
    """Raised when a ContextManager is used after destroy()."""


class ContextManager:
    """
    Main context gathering orchestrator.

    gather_context() never raises for provider problems: failures and
    timeouts are counted in `errors` and the remaining fragments are
    returned. It raises only for misuse (bad options, use after destroy).
    """

    def __init__(
        self,
        config: Union[ManagerConfig, dict, str, None] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize context manager.

        Args:
            config: ManagerConfig, dict, or path to a YAML/JSON config file
            clock: Time source in epoch seconds (default: time.time).
                Shared by the cache and the prioritizer.
        """
        if config is None:
            config = ManagerConfig.default()
        elif isinstance(config, dict):
            config = ManagerConfig.from_dict(config)
        elif isinstance(config, str):
            config = ManagerConfig.load(config)
        self.config = config
        self._clock = clock or time.time

        # Sub-components
        self.cache = BoundedCache(
            ttl_ms=config.cache.ttl_ms,
            max_size_mb=config.cache.max_size_mb,
            clock=self._clock,
        )
        self.prioritizer = Prioritizer(
            recency_half_life_ms=config.recency_half_life_ms,
            default_affinity=config.default_affinity,
            clock=self._clock,
        )
        self.budget = BudgetSelector(chars_per_token=config.chars_per_token)
        self.logger = GatherLogger(config.log_path)
        self.cache.on_invalidate(self.logger.log_invalidation)

        # State
        self._providers: Dict[str, Any] = {}
        self._listeners: List[Listener] = []
        self._inflight: Dict[str, asyncio.Future] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self._destroyed = False

        # Statistics
        self._total_gatherings = 0
        self._total_errors = 0
        self._total_gather_time_ms = 0.0

    # ------------------------------------------------------------------
    # Provider registry
    # ------------------------------------------------------------------

    def register_provider(self, provider, weight: Optional[float] = None):
        """
        Add or replace a provider by name.

        Replacing keeps the provider's original tie-break position.
        Does not trigger a gather.

        Args:
            provider: Object with name, enabled, gather() and optionally
                should_include(), relevant_triggers, destroy()
            weight: Static priority in [0, 1]; defaults to
                config.provider_weights[name] or 1.0
        """
        self._check_alive()

        name = getattr(provider, "name", None)
        if not name or not callable(getattr(provider, "gather", None)):
            raise TypeError("Provider must have a non-empty name and a gather() method")

        if weight is None:
            weight = self.config.provider_weights.get(name, 1.0)
        triggers = [Trigger.coerce(t) for t in getattr(provider, "relevant_triggers", ())]

        self.prioritizer.register(name, weight=weight, triggers=triggers)
        self._providers[name] = provider

    def unregister_provider(self, name: str):
        """
        Remove a provider. Gathers already fanned out to it are unaffected.
        """
        self._check_alive()

        self._providers.pop(name, None)
        self.prioritizer.unregister(name)

    def get_provider(self, name: str):
        """Get registered provider by name."""
        return self._providers.get(name)

    def provider_names(self) -> List[str]:
        """Registered provider names in registration order."""
        return list(self._providers)

    def set_provider_enabled(self, name: str, enabled: bool):
        """Enable or disable a provider. Unknown names are ignored."""
        self._check_alive()

        provider = self._providers.get(name)
        if provider is not None:
            provider.enabled = enabled

    # ------------------------------------------------------------------
    # Gathering
    # ------------------------------------------------------------------

    def cache_key_for(self, options: GatherOptions, trigger: Trigger) -> str:
        """Deterministic cache key for options without an explicit key."""
        budget = "-" if options.token_budget is None else str(options.token_budget)
        providers = ",".join(sorted(options.provider_names)) if options.provider_names else "*"
        return f"auto:{trigger.value}:{float(options.min_relevance):g}:{budget}:{providers}"

    async def gather_context(
        self,
        options: Optional[GatherOptions] = None,
        **kwargs,
    ) -> GatherResult:
        """
        Gather context from all enabled providers.

        Process:
        1. Resolve cache key (explicit or derived from options)
        2. Serve from cache unless force_refresh
        3. Join an identical in-flight gather if one exists
        4. Fan out to included providers concurrently
        5. Score, filter by min_relevance, apply token budget
        6. Cache the result, update stats, emit events

        Args:
            options: GatherOptions (or pass its fields as keyword arguments)

        Returns:
            GatherResult sorted by score descending
        """
        self._check_alive()

        if options is None:
            options = GatherOptions(**kwargs)
        elif kwargs:
            options = replace(options, **kwargs)

        trigger = Trigger.coerce(options.trigger or self.config.default_trigger)
        key = options.cache_key or self.cache_key_for(options, trigger)
        start = time.perf_counter()
        self._ensure_sweeper()

        # Fast path: cache
        if not options.force_refresh:
            entry = self.cache.get(key)
            if entry is not None:
                elapsed = (time.perf_counter() - start) * 1000
                result = replace(
                    entry.result,
                    cached=True,
                    errors=0,
                    gather_time_ms=elapsed,
                    timestamp=self._clock(),
                )
                self._record(elapsed, 0)
                self.logger.log_cache_hit(key, elapsed)
                self._emit(EVENT_CACHE_HIT, result.contexts)
                return result

            self._emit(EVENT_CACHE_MISS, None)

            pending = self._inflight.get(key) if self.config.coalesce_inflight else None
            if pending is not None:
                result = await self._await_gather(pending)
                self._record((time.perf_counter() - start) * 1000, 0)
                return result

        task = asyncio.ensure_future(self._gather_fresh(options, trigger, key))
        if self.config.coalesce_inflight:
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget_inflight(key, t))

        result = await self._await_gather(task)
        self._record((time.perf_counter() - start) * 1000, result.errors)
        return result

    async def _await_gather(self, task: asyncio.Future) -> GatherResult:
        """Await a shared gather task; destroy() cancelling it is misuse."""
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._destroyed:
                raise ManagerDestroyedError("ContextManager was destroyed during gather")
            raise

    async def _gather_fresh(
        self,
        options: GatherOptions,
        trigger: Trigger,
        key: str,
    ) -> GatherResult:
        start = time.perf_counter()
        # Recency is measured from cycle start: fragments gathered in this
        # cycle score 1.0, stale ones returned by providers decay
        cycle_start = self._clock()
        prioritizer = self.prioritizer.snapshot()
        errors = 0

        included = []
        for provider in self._select_providers(options):
            try:
                if self._should_include(provider, trigger):
                    included.append(provider)
            except Exception as e:
                errors += 1
                self._provider_failed(provider.name, e, key)

        fragments, fan_out_errors = await self._fan_out(included, key)
        errors += fan_out_errors

        if self._destroyed:
            raise ManagerDestroyedError("ContextManager was destroyed during gather")

        scored = prioritizer.score(fragments, trigger, now=cycle_start)
        scored = prioritizer.filter(scored, options.min_relevance)
        scored = self.budget.annotate(scored)

        if options.token_budget is not None:
            selection = self.budget.select(scored, options.token_budget)
            contexts, total_tokens = selection.selected, selection.total_tokens
        else:
            contexts, total_tokens = scored, self.budget.total(scored)

        result = GatherResult(
            contexts=tuple(contexts),
            total_tokens=total_tokens,
            cached=False,
            errors=errors,
            gather_time_ms=(time.perf_counter() - start) * 1000,
            cache_key=key,
            timestamp=self._clock(),
        )

        self.cache.set(key, result)
        self.logger.log_gather(result, trigger.value, len(included))
        self._emit(EVENT_GATHERED, result.contexts)
        return result

    def _select_providers(self, options: GatherOptions) -> list:
        """Enabled providers, optionally restricted to options.provider_names."""
        if options.provider_names is not None:
            wanted = set(options.provider_names)
            candidates = [p for name, p in self._providers.items() if name in wanted]
        else:
            candidates = list(self._providers.values())
        return [p for p in candidates if getattr(p, "enabled", True)]

    @staticmethod
    def _should_include(provider, trigger: Trigger) -> bool:
        should_include = getattr(provider, "should_include", None)
        if should_include is None:
            return True
        return bool(should_include(trigger))

    async def _fan_out(self, providers: list, key: str) -> Tuple[List[ContextFragment], int]:
        """
        Call gather() on every provider concurrently.

        Each call is isolated: an exception, timeout or bad return value
        drops that provider's fragment and counts one error.
        """
        if not providers:
            return [], 0

        timeout = self.config.provider_timeout_ms / 1000.0
        outcomes = await asyncio.gather(
            *(self._gather_one(p, timeout) for p in providers),
            return_exceptions=True,
        )

        fragments = []
        errors = 0
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                errors += 1
                self._provider_failed(provider.name, outcome, key)
            else:
                fragments.append(outcome)
        return fragments, errors

    async def _gather_one(self, provider, timeout: float) -> ContextFragment:
        try:
            fragment = await asyncio.wait_for(provider.gather(), timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Provider '{provider.name}' timed out after "
                f"{self.config.provider_timeout_ms} ms"
            )
        if not isinstance(fragment, ContextFragment):
            raise TypeError(
                f"Provider '{provider.name}' returned {type(fragment).__name__}, "
                f"expected ContextFragment"
            )
        return fragment

    def _provider_failed(self, name: str, error: BaseException, key: str):
        self.logger.log_provider_error(name, error, key)
        self._emit(EVENT_PROVIDER_ERROR, error)

    def _forget_inflight(self, key: str, task: asyncio.Future):
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _record(self, elapsed_ms: float, errors: int):
        self._total_gatherings += 1
        self._total_errors += errors
        self._total_gather_time_ms += elapsed_ms

    # ------------------------------------------------------------------
    # Cache access
    # ------------------------------------------------------------------

    def invalidate_cache(self, key: str) -> bool:
        """Invalidate one cache entry."""
        self._check_alive()
        return self.cache.invalidate(key)

    def invalidate_matching(self, fragment: str) -> int:
        """Invalidate every cache entry whose key contains fragment."""
        self._check_alive()
        return self.cache.invalidate_matching(fragment)

    def clear_cache(self):
        """Clear all cached results."""
        self._check_alive()
        self.cache.clear()

    def has_cache(self, key: str) -> bool:
        """Whether a live cache entry exists for key."""
        self._check_alive()
        return self.cache.has(key)

    def start_sweeper(self) -> Optional[asyncio.Task]:
        """
        Start the periodic TTL sweep, if cache.sweep_interval_ms is set.

        Must be called from a running event loop. gather_context() starts
        it automatically.
        """
        self._check_alive()

        interval_ms = self.config.cache.sweep_interval_ms
        if interval_ms is None:
            return None
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.ensure_future(self._sweep_loop(interval_ms / 1000.0))
        return self._sweeper

    def _ensure_sweeper(self):
        if self.config.cache.sweep_interval_ms is not None and self._sweeper is None:
            self.start_sweeper()

    async def _sweep_loop(self, interval: float):
        while not self._destroyed:
            await asyncio.sleep(interval)
            if self._destroyed:
                break
            self.cache.sweep()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Subscribe to context events.

        Listener receives (event, data):
        - "context-gathered": tuple of ScoredFragments
        - "cache-hit": tuple of ScoredFragments
        - "cache-miss": None
        - "provider-error": the exception

        Returns:
            Unsubscribe function
        """
        self._check_alive()
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, data: Any):
        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception as e:
                print(f"Warning: context listener failed on '{event}': {e}", file=sys.stderr)

    # ------------------------------------------------------------------
    # Stats and lifecycle
    # ------------------------------------------------------------------

    def get_stats(self) -> ManagerStats:
        """Get context manager statistics."""
        providers = list(self._providers.values())
        count = self._total_gatherings
        return ManagerStats(
            total_gatherings=count,
            total_errors=self._total_errors,
            avg_gather_time_ms=self._total_gather_time_ms / count if count else 0.0,
            providers=len(providers),
            enabled_providers=sum(1 for p in providers if getattr(p, "enabled", True)),
            cache=CacheStats() if self._destroyed else self.cache.stats(),
        )

    def destroy(self):
        """
        Release the cache, clear the provider registry and listeners,
        cancel the sweeper and in-flight gathers, reset stats.

        Safe to call twice. Any other use afterwards raises
        ManagerDestroyedError.
        """
        if self._destroyed:
            return
        self._destroyed = True

        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()

        for provider in self._providers.values():
            destroy = getattr(provider, "destroy", None)
            if destroy is None:
                continue
            try:
                destroy()
            except Exception as e:
                print(f"Warning: provider '{provider.name}' destroy failed: {e}", file=sys.stderr)
        self._providers.clear()
        self.prioritizer.clear()

        self.cache.destroy()
        self._listeners.clear()

        self._total_gatherings = 0
        self._total_errors = 0
        self._total_gather_time_ms = 0.0

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def _check_alive(self):
        if self._destroyed:
            raise ManagerDestroyedError("ContextManager has been destroyed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.destroy()
