"""Configuration loader for agent-ctxgather."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .types import Trigger


PROVIDER_TYPES = ("static", "file", "http")


@dataclass
class CacheConfig:
    """Configuration for the bounded result cache."""
    ttl_ms: int = 30000
    max_size_mb: float = 10.0
    sweep_interval_ms: Optional[int] = None  # None = lazy expiry only

    def __post_init__(self):
        if self.ttl_ms < 0:
            raise ValueError(f"cache.ttl_ms must be >= 0, got {self.ttl_ms}")
        if self.max_size_mb <= 0:
            raise ValueError(f"cache.max_size_mb must be > 0, got {self.max_size_mb}")
        if self.sweep_interval_ms is not None and self.sweep_interval_ms <= 0:
            raise ValueError(
                f"cache.sweep_interval_ms must be > 0, got {self.sweep_interval_ms}"
            )


@dataclass
class ProviderConfig:
    """
    Declarative provider definition, used by the CLI.

    Types:
    - static: payload is served as-is
    - file: JSON file at `path` is read on every gather
    - http: JSON document fetched from `url` on every gather
    """
    name: str
    type: str = "static"
    path: Optional[str] = None
    url: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    weight: Optional[float] = None
    triggers: List[str] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self):
        if self.type not in PROVIDER_TYPES:
            raise ValueError(
                f"Provider '{self.name}': unknown type '{self.type}' "
                f"(expected one of: {', '.join(PROVIDER_TYPES)})"
            )
        if self.type == "file" and not self.path:
            raise ValueError(f"Provider '{self.name}': file provider needs 'path'")
        if self.type == "http" and not self.url:
            raise ValueError(f"Provider '{self.name}': http provider needs 'url'")
        for t in self.triggers:
            Trigger.coerce(t)

    def to_dict(self) -> dict:
        data = {"name": self.name, "type": self.type}
        if self.path:
            data["path"] = self.path
        if self.url:
            data["url"] = self.url
        if self.payload:
            data["payload"] = self.payload
        if self.headers:
            data["headers"] = self.headers
        if self.weight is not None:
            data["weight"] = self.weight
        if self.triggers:
            data["triggers"] = list(self.triggers)
        if not self.enabled:
            data["enabled"] = False
        return data


@dataclass
class ManagerConfig:
    """Main configuration for ContextManager."""
    cache: CacheConfig = field(default_factory=CacheConfig)
    default_trigger: str = "proactive"
    provider_weights: Dict[str, float] = field(default_factory=dict)
    recency_half_life_ms: float = 30000.0
    provider_timeout_ms: int = 5000
    default_affinity: float = 0.5
    chars_per_token: int = 4
    coalesce_inflight: bool = True

    # Logging
    log_path: Optional[str] = None

    # Declarative providers (CLI)
    providers: List[ProviderConfig] = field(default_factory=list)

    def __post_init__(self):
        """Convert dicts to proper config objects and validate."""
        if isinstance(self.cache, dict):
            self.cache = CacheConfig(**self.cache)
        self.providers = [
            ProviderConfig(**p) if isinstance(p, dict) else p
            for p in self.providers
        ]
        self.default_trigger = Trigger.coerce(self.default_trigger).value

        for name, weight in self.provider_weights.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"provider_weights['{name}'] must be in [0, 1], got {weight}")
        if self.recency_half_life_ms <= 0:
            raise ValueError(
                f"recency_half_life_ms must be > 0, got {self.recency_half_life_ms}"
            )
        if self.provider_timeout_ms <= 0:
            raise ValueError(
                f"provider_timeout_ms must be > 0, got {self.provider_timeout_ms}"
            )
        if not 0.0 <= self.default_affinity <= 1.0:
            raise ValueError(f"default_affinity must be in [0, 1], got {self.default_affinity}")
        if self.chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be > 0, got {self.chars_per_token}")

    @classmethod
    def load(cls, path: str) -> "ManagerConfig":
        """Load configuration from YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        else:
            data = json.loads(content)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "ManagerConfig":
        """Create config from dictionary. Unknown keys are ignored."""
        # Handle nested section
        if "ctxgather" in data:
            data = data["ctxgather"]

        cache_data = data.get("cache") or {}
        cache = CacheConfig(**cache_data) if isinstance(cache_data, dict) else CacheConfig()

        providers = [
            ProviderConfig(**p) if isinstance(p, dict) else p
            for p in data.get("providers") or []
        ]

        kwargs = {
            k: v for k, v in data.items()
            if k in cls.__dataclass_fields__ and k not in ("cache", "providers")
        }
        return cls(cache=cache, providers=providers, **kwargs)

    @classmethod
    def default(cls) -> "ManagerConfig":
        """Default configuration with no declared providers."""
        return cls()

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "cache": {
                "ttl_ms": self.cache.ttl_ms,
                "max_size_mb": self.cache.max_size_mb,
                "sweep_interval_ms": self.cache.sweep_interval_ms,
            },
            "default_trigger": self.default_trigger,
            "provider_weights": dict(self.provider_weights),
            "recency_half_life_ms": self.recency_half_life_ms,
            "provider_timeout_ms": self.provider_timeout_ms,
            "default_affinity": self.default_affinity,
            "chars_per_token": self.chars_per_token,
            "coalesce_inflight": self.coalesce_inflight,
            "log_path": self.log_path,
            "providers": [p.to_dict() for p in self.providers],
        }

    def save(self, path: str):
        """Save configuration to file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()

        if path.suffix in (".yaml", ".yml"):
            content = yaml.dump(data, default_flow_style=False, sort_keys=False)
        else:
            content = json.dumps(data, indent=2)

        path.write_text(content)
