"""Integration tests for agent-ctxgather end-to-end workflows."""

import asyncio
import json
import tempfile

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from agent_ctxgather import (
    CallableProvider,
    ContextManager,
    JsonFileProvider,
    ManagerConfig,
    ProviderConfig,
    StaticProvider,
)
from agent_ctxgather import cli


class TestEndToEnd:
    """End-to-end integration tests."""

    @pytest.fixture
    def workspace(self):
        """Create a temporary workspace with page state files."""
        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir)

            (base / "dom.json").write_text(json.dumps({
                "title": "Checkout",
                "headings": ["Cart", "Shipping", "Payment"],
                "buttons": ["Place order"],
            }))
            (base / "form.json").write_text(json.dumps({
                "form": "payment",
                "fields": {"card": "filled", "zip": "empty"},
                "errors": ["zip is required"],
            }))

            yield base

    @pytest.mark.asyncio
    async def test_full_workflow(self, workspace):
        """Register, gather, hit cache, refresh after a state change."""
        config = ManagerConfig.from_dict({
            "cache": {"ttl_ms": 60000},
            "default_trigger": "user-prompt",
            "provider_weights": {"viewport": 0.5},
            "log_path": str(workspace / "logs"),
        })
        manager = ContextManager(config)

        manager.register_provider(JsonFileProvider(
            "dom", str(workspace / "dom.json"), relevant_triggers=["user-prompt"],
        ))
        manager.register_provider(JsonFileProvider(
            "form", str(workspace / "form.json"), relevant_triggers=["user-prompt", "user-action"],
        ))
        manager.register_provider(CallableProvider(
            "viewport", lambda: {"width": 1280, "height": 800, "scroll_pct": 40},
        ))

        result = await manager.gather_context()
        assert [sf.source for sf in result.contexts] == ["dom", "form", "viewport"]
        assert result.errors == 0
        assert result.cached is False

        cached = await manager.gather_context()
        assert cached.cached is True
        assert cached.contexts == result.contexts

        # The page changed; drop cached form state and re-gather
        (workspace / "form.json").write_text(json.dumps({"form": "payment", "fields": {}}))
        manager.clear_cache()
        fresh = await manager.gather_context()
        payloads = {sf.source: sf.fragment.payload for sf in fresh.contexts}
        assert payloads["form"] == {"form": "payment", "fields": {}}

        # Tight budget keeps the highest-ranked fragments that fit
        tokens = {sf.source: sf.tokens for sf in fresh.contexts}
        budget = tokens["dom"] + tokens["viewport"]
        trimmed = await manager.gather_context(token_budget=budget)
        assert trimmed.total_tokens <= budget
        assert trimmed.contexts[0].source == "dom"

        stats = manager.get_stats()
        assert stats.total_gatherings == 4
        assert stats.cache.hits == 1
        manager.destroy()

    @pytest.mark.asyncio
    async def test_partial_failure_with_slow_provider(self, workspace):
        manager = ContextManager({"provider_timeout_ms": 100})

        async def slow():
            await asyncio.sleep(2)
            return {"never": "arrives"}

        manager.register_provider(JsonFileProvider("dom", str(workspace / "dom.json")))
        manager.register_provider(CallableProvider("slow", slow))
        manager.register_provider(JsonFileProvider("ghost", str(workspace / "ghost.json")))

        result = await manager.gather_context(min_relevance=0)
        assert result.errors == 2
        assert [sf.source for sf in result.contexts] == ["dom"]
        manager.destroy()


class TestCli:
    """Test the ctxgather command line."""

    @pytest.fixture
    def config_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir)
            config = ManagerConfig(
                log_path=str(base / "logs"),
                providers=[
                    ProviderConfig(name="dom", payload={"title": "Home"}, triggers=["proactive"]),
                    ProviderConfig(name="flags", payload={"beta": True}, weight=0.5),
                    ProviderConfig(name="state", type="file", path=str(base / "missing.json")),
                ],
            )
            path = base / "ctxgather.yaml"
            config.save(str(path))
            yield path

    def run_cli(self, monkeypatch, *argv):
        monkeypatch.setattr(sys, "argv", ["ctxgather", *argv])
        cli.main()

    def test_gather_json(self, monkeypatch, capsys, config_path):
        self.run_cli(monkeypatch, "-c", str(config_path), "gather", "--json")
        output = json.loads(capsys.readouterr().out)
        assert [c["provider"] for c in output["contexts"]] == ["dom", "flags"]
        assert output["errors"] == 1
        assert output["cached"] is False

    def test_gather_restricted(self, monkeypatch, capsys, config_path):
        self.run_cli(monkeypatch, "-c", str(config_path), "gather", "--json", "-p", "flags")
        output = json.loads(capsys.readouterr().out)
        assert [c["provider"] for c in output["contexts"]] == ["flags"]
        assert output["errors"] == 0

    def test_gather_table_and_stats(self, monkeypatch, capsys, config_path):
        self.run_cli(monkeypatch, "-c", str(config_path), "gather", "-b", "1000")
        out = capsys.readouterr().out
        assert "[dom]" in out
        assert "Errors: 1" in out

        self.run_cli(monkeypatch, "-c", str(config_path), "stats")
        out = capsys.readouterr().out
        assert "Gathers: 1" in out
        assert "state: 1" in out

    def test_providers(self, monkeypatch, capsys, config_path):
        self.run_cli(monkeypatch, "-c", str(config_path), "providers")
        out = capsys.readouterr().out
        assert "dom" in out
        assert "flags" in out
        assert "file" in out

    def test_init(self, monkeypatch, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "ctxgather.yaml"
            self.run_cli(monkeypatch, "-c", str(path), "init")
            assert path.exists()
            loaded = ManagerConfig.load(str(path))
            assert [p.name for p in loaded.providers] == ["app", "state"]

            with pytest.raises(SystemExit):
                self.run_cli(monkeypatch, "-c", str(path), "init")

    def test_missing_config(self, monkeypatch, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "absent.yaml"
            with pytest.raises(SystemExit):
                self.run_cli(monkeypatch, "-c", str(path), "gather")
            assert "ctxgather init" in capsys.readouterr().out
