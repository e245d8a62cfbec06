"""In-process providers: fixed payloads and callables."""

import asyncio
import copy
from typing import Any, Callable, Dict, Optional

from .base import ContextProvider
from ..types import ContextFragment


class StaticProvider(ContextProvider):
    """
    Serves a fixed payload.

    Useful for app-level facts that rarely change (user profile, feature
    flags) and for tests.

    Usage:
        provider = StaticProvider("profile", {"plan": "pro"})
    """

    def __init__(self, name: str, payload: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(name, **kwargs)
        self.payload = payload or {}

    async def gather(self) -> ContextFragment:
        # Fragments are shared with cache entries; never hand out our own dict
        return self.fragment(copy.deepcopy(self.payload))


class CallableProvider(ContextProvider):
    """
    Builds its payload by calling a function.

    The function may be sync or async and must return a dict.

    Usage:
        provider = CallableProvider("form", lambda: {"fields": read_form()})
    """

    def __init__(self, name: str, func: Callable[[], Any], **kwargs):
        super().__init__(name, **kwargs)
        self.func = func

    async def gather(self) -> ContextFragment:
        payload = self.func()
        if asyncio.iscoroutine(payload):
            payload = await payload
        if not isinstance(payload, dict):
            raise TypeError(
                f"Provider '{self.name}' returned {type(payload).__name__}, expected dict"
            )
        return self.fragment(payload)
