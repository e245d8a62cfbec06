#!/usr/bin/env python3
"""
Command-line interface for agent-ctxgather.

Usage:
    ctxgather init
    ctxgather providers
    ctxgather gather --trigger user-prompt --budget 2000
    ctxgather gather --json --provider dom --provider form
    ctxgather stats --hours 24
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config import ManagerConfig, ProviderConfig
from .logger import GatherLogger
from .manager import ContextManager
from .providers import build_provider


def _load_config(args) -> ManagerConfig:
    return ManagerConfig.load(args.config)


def cmd_init(args):
    """Write a starter config."""
    config_path = Path(args.output or args.config)

    if config_path.exists() and not args.force:
        print(f"Config already exists: {config_path}")
        print("Use --force to overwrite.")
        sys.exit(1)

    config = ManagerConfig(
        log_path="./logs/ctxgather/",
        providers=[
            ProviderConfig(
                name="app",
                type="static",
                payload={"app": "example", "version": "1.0"},
                triggers=["proactive", "user-prompt"],
            ),
            ProviderConfig(name="state", type="file", path="./state.json", weight=0.8),
        ],
    )
    config.save(str(config_path))
    print(f"✓ Created {config_path}")


def cmd_providers(args):
    """List configured providers."""
    config = _load_config(args)
    if not config.providers:
        print("No providers configured.")
        return

    print(f"{'Name':<16} {'Type':<8} {'Weight':<8} {'Enabled':<8} {'Source'}")
    print("-" * 70)
    for p in config.providers:
        weight = p.weight if p.weight is not None else config.provider_weights.get(p.name, 1.0)
        source = p.path or p.url or "(inline)"
        enabled = "yes" if p.enabled else "no"
        print(f"{p.name:<16} {p.type:<8} {weight:<8.2f} {enabled:<8} {source}")


async def _run_gather(config: ManagerConfig, args):
    manager = ContextManager(config)
    try:
        for pconf in config.providers:
            manager.register_provider(build_provider(pconf), weight=pconf.weight)
        return await manager.gather_context(
            trigger=args.trigger,
            min_relevance=args.min_relevance,
            token_budget=args.budget,
            provider_names=args.provider or None,
        )
    finally:
        manager.destroy()


def cmd_gather(args):
    """Run one gather against the configured providers."""
    config = _load_config(args)
    if not config.providers:
        print("No providers configured. Add some to the 'providers' section of the config.")
        sys.exit(1)

    result = asyncio.run(_run_gather(config, args))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return

    print(f"Contexts: {len(result.contexts)}  Tokens: {result.total_tokens}  "
          f"Errors: {result.errors}  Time: {result.gather_time_ms:.1f} ms")
    print()
    for sf in result.contexts:
        snippet = json.dumps(sf.fragment.payload, default=str)
        if len(snippet) > 80:
            snippet = snippet[:77] + "..."
        print(f"[{sf.source}] (score: {sf.score:.3f}, tokens: {sf.tokens})")
        print(f"  {snippet}")


def cmd_stats(args):
    """Summarize the activity log."""
    config = _load_config(args)
    if not config.log_path:
        print("Logging is disabled (no log_path in config).")
        return

    logger = GatherLogger(config.log_path)
    gathers = logger.get_gather_stats(hours=args.hours)
    errors = logger.get_error_stats(hours=args.hours)

    if not gathers and not errors:
        print(f"No activity in the last {args.hours}h.")
        return

    print(f"Last {args.hours}h:")
    print(f"  Gathers: {gathers.get('gather_count', 0)}")
    print(f"  Cache hits: {gathers.get('cache_hit_count', 0)}")
    print(f"  Avg gather time: {gathers.get('avg_gather_time_ms', 0.0):.1f} ms")
    print(f"  Max gather time: {gathers.get('max_gather_time_ms', 0.0):.1f} ms")
    print(f"  Provider errors: {errors.get('total_errors', 0)}")
    for name, count in errors.get("errors_by_provider", {}).items():
        print(f"    {name}: {count}")


def main():
    parser = argparse.ArgumentParser(
        description="Context gathering, caching and prioritization for AI chat",
        prog="ctxgather"
    )
    parser.add_argument(
        "-c", "--config",
        default="ctxgather.yaml",
        help="Path to config file (default: ctxgather.yaml)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    p_init = subparsers.add_parser("init", help="Create a starter config")
    p_init.add_argument("-o", "--output", help="Config file path")
    p_init.add_argument("-f", "--force", action="store_true", help="Overwrite existing")
    p_init.set_defaults(func=cmd_init)

    # providers
    p_providers = subparsers.add_parser("providers", help="List configured providers")
    p_providers.set_defaults(func=cmd_providers)

    # gather
    p_gather = subparsers.add_parser("gather", help="Gather context once")
    p_gather.add_argument("-t", "--trigger", default=None, help="Trigger (default: from config)")
    p_gather.add_argument("-b", "--budget", type=int, default=None, help="Token budget")
    p_gather.add_argument("-m", "--min-relevance", type=float, default=0.0,
                          help="Minimum relevance score (0-1)")
    p_gather.add_argument("-p", "--provider", action="append",
                          help="Only gather from this provider (repeatable)")
    p_gather.add_argument("--json", action="store_true", help="Output as JSON")
    p_gather.set_defaults(func=cmd_gather)

    # stats
    p_stats = subparsers.add_parser("stats", help="Summarize the activity log")
    p_stats.add_argument("--hours", type=int, default=24, help="Look-back window")
    p_stats.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except FileNotFoundError as e:
        if args.config in str(e) and args.command != "init":
            print(f"No {args.config} found. Run 'ctxgather init' first, or specify --config.")
            sys.exit(1)
        raise
    except ValueError as e:
        print(f"✗ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nAborted.")
        sys.exit(1)


if __name__ == "__main__":
    main()
