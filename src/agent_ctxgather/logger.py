"""
Logging utilities for context gathering.
"""

from pathlib import Path
from typing import Optional
import json
from datetime import datetime


class GatherLogger:
    """
    Logs context gathering activity to JSONL files.

    Files:
    - gather.jsonl: Fresh gathers and cache hits
    - errors.jsonl: Provider failures and timeouts
    - cache.jsonl: Evictions, expiries and invalidations

    With log_path=None nothing is written; the last-gather timestamp is
    still tracked.
    """

    def __init__(self, log_path: Optional[str] = None):
        """
        Initialize logger.

        Args:
            log_path: Path to log directory (None disables file output)
        """
        self.log_path = Path(log_path) if log_path else None
        if self.log_path:
            self.log_path.mkdir(parents=True, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.log_path is not None

    def _log(self, file: str, entry: dict):
        """Write a log entry to file."""
        if not self.log_path:
            return
        log_file = self.log_path / file
        entry["timestamp"] = datetime.now().isoformat()
        with open(log_file, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def log_gather(self, result, trigger: str, providers_called: int):
        """Log a fresh gather."""
        self._log("gather.jsonl", {
            "event": "gather",
            "cache_key": result.cache_key,
            "trigger": trigger,
            "providers_called": providers_called,
            "contexts": len(result.contexts),
            "sources": [sf.source for sf in result.contexts],
            "total_tokens": result.total_tokens,
            "errors": result.errors,
            "gather_time_ms": round(result.gather_time_ms, 3),
        })

    def log_cache_hit(self, cache_key: str, gather_time_ms: float):
        """Log a result served from cache."""
        self._log("gather.jsonl", {
            "event": "cache_hit",
            "cache_key": cache_key,
            "gather_time_ms": round(gather_time_ms, 3),
        })

    def log_provider_error(self, provider: str, error: BaseException, cache_key: str):
        """Log a provider failure."""
        self._log("errors.jsonl", {
            "event": "provider_error",
            "provider": provider,
            "error_type": type(error).__name__,
            "error": str(error) or repr(error),
            "cache_key": cache_key,
        })

    def log_invalidation(self, reason: str, key: Optional[str]):
        """Log a cache entry leaving the cache."""
        self._log("cache.jsonl", {
            "event": "invalidation",
            "reason": reason,
            "key": key,
        })

    def _read_since(self, file: str, hours: int):
        log_file = self.log_path / file if self.log_path else None
        if not log_file or not log_file.exists():
            return []

        since = datetime.now().timestamp() - (hours * 3600)
        entries = []
        with open(log_file) as f:
            for line in f:
                if not line.strip():
                    continue
                entry = json.loads(line)
                ts = datetime.fromisoformat(entry["timestamp"]).timestamp()
                if ts > since:
                    entries.append(entry)
        return entries

    def get_gather_stats(self, hours: int = 24) -> dict:
        """Get gather statistics for the last N hours."""
        entries = self._read_since("gather.jsonl", hours)
        gathers = [e for e in entries if e.get("event") == "gather"]
        hits = [e for e in entries if e.get("event") == "cache_hit"]
        if not gathers and not hits:
            return {}

        times = [e["gather_time_ms"] for e in gathers]
        return {
            "gather_count": len(gathers),
            "cache_hit_count": len(hits),
            "avg_gather_time_ms": sum(times) / len(times) if times else 0.0,
            "max_gather_time_ms": max(times) if times else 0.0,
            "total_tokens": sum(e.get("total_tokens", 0) for e in gathers),
        }

    def get_error_stats(self, hours: int = 24) -> dict:
        """Get provider error statistics for the last N hours."""
        entries = self._read_since("errors.jsonl", hours)
        if not entries:
            return {}

        by_provider = {}
        for entry in entries:
            name = entry.get("provider", "unknown")
            by_provider[name] = by_provider.get(name, 0) + 1

        return {
            "total_errors": len(entries),
            "errors_by_provider": by_provider,
        }
