"""Context providers for agent-ctxgather."""

from .base import ContextProvider
from .static import StaticProvider, CallableProvider
from .file import JsonFileProvider

__all__ = [
    "ContextProvider",
    "StaticProvider",
    "CallableProvider",
    "JsonFileProvider",
    "build_provider",
]


# Lazy import for the httpx-backed provider
def get_http_provider():
    """Get HttpProvider (requires httpx)."""
    from .http import HttpProvider
    return HttpProvider


def build_provider(pconf, clock=None) -> ContextProvider:
    """
    Build a provider from a ProviderConfig.

    Args:
        pconf: ProviderConfig instance
        clock: Optional timestamp source

    Returns:
        Configured ContextProvider
    """
    common = {
        "enabled": pconf.enabled,
        "relevant_triggers": pconf.triggers,
        "clock": clock,
    }
    if pconf.type == "file":
        return JsonFileProvider(pconf.name, pconf.path, **common)
    if pconf.type == "http":
        HttpProvider = get_http_provider()
        return HttpProvider(pconf.name, pconf.url, headers=pconf.headers, **common)
    return StaticProvider(pconf.name, pconf.payload, **common)
