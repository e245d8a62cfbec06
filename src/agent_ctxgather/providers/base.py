"""Base class for context providers."""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Union

from ..types import ContextFragment, Trigger


class ContextProvider(ABC):
    """
    Base class for context providers.

    A provider supplies one named slice of context on demand. The manager
    only touches `name`, `enabled`, `relevant_triggers`, `gather()`,
    `should_include()` and `destroy()`.

    Implementations:
    - StaticProvider: fixed payload
    - CallableProvider: payload from a sync or async function
    - JsonFileProvider: JSON document read from disk
    - HttpProvider: JSON document fetched over HTTP (httpx)
    """

    def __init__(
        self,
        name: str,
        enabled: bool = True,
        relevant_triggers: Optional[Iterable[Union[Trigger, str]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            name: Unique provider name
            enabled: Disabled providers are never gathered
            relevant_triggers: Triggers this provider is most relevant to
            clock: Timestamp source for fragments (default: time.time)
        """
        if not name:
            raise ValueError("Provider name must be non-empty")
        self.name = name
        self.enabled = enabled
        self.relevant_triggers: FrozenSet[Trigger] = frozenset(
            Trigger.coerce(t) for t in (relevant_triggers or ())
        )
        self._clock = clock or time.time

    @abstractmethod
    async def gather(self) -> ContextFragment:
        """
        Gather this provider's context.

        Must not call back into the manager.
        """
        pass

    def should_include(self, trigger: Trigger) -> bool:
        """Whether to gather for this trigger. Override to skip some triggers."""
        return True

    def destroy(self) -> None:
        """Cleanup resources. Override if needed."""
        pass

    def fragment(self, payload: Dict[str, Any]) -> ContextFragment:
        """Wrap a payload in a fragment stamped with this provider's clock."""
        return ContextFragment(
            provider=self.name,
            timestamp=self._clock(),
            payload=payload,
        )

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"<{type(self).__name__} {self.name!r} ({state})>"
