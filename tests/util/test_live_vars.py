from __future__ import annotations

import pytest

from rollgen.util.live_vars import MetricSpec, live_variable_registry, record_time


class TestWatchedVariables:
    def test_watch_reads_through_getter(self) -> None:
        value = {"state": "IDLE"}
        var = live_variable_registry.watch("gen.state", lambda: value["state"])
        value["state"] = "FINALIZING"
        assert var.read() == "FINALIZING"
        assert not var.is_metric

    def test_watch_again_rebinds(self) -> None:
        live_variable_registry.watch("gen.state", lambda: 1)
        live_variable_registry.watch("gen.state", lambda: 2)
        var = live_variable_registry.get("gen.state")
        assert var is not None
        assert var.read() == 2

    def test_watch_cannot_replace_metric(self) -> None:
        live_variable_registry.register_metric("gen.step_ms")
        with pytest.raises(ValueError):
            live_variable_registry.watch("gen.step_ms", lambda: 0)


class TestMetrics:
    def test_register_duplicate_raises(self) -> None:
        live_variable_registry.register_metric("gen.step_ms")
        with pytest.raises(ValueError):
            live_variable_registry.register_metric("gen.step_ms")

    def test_register_metrics_skips_existing(self) -> None:
        first = live_variable_registry.register_metric("gen.step_ms", window=5)
        live_variable_registry.register_metrics(
            [MetricSpec("gen.step_ms", "again"), MetricSpec("gen.run_ms", "run", 20)]
        )
        assert live_variable_registry.get("gen.step_ms") is first
        run = live_variable_registry.get("gen.run_ms")
        assert run is not None and run.stats is not None
        assert run.stats.window == 20
        assert [v.name for v in live_variable_registry.metrics()] == [
            "gen.run_ms",
            "gen.step_ms",
        ]

    def test_record_and_read(self) -> None:
        var = live_variable_registry.register_metric("gen.run_ms", window=4)
        assert var.read() == "no samples"
        live_variable_registry.record("gen.run_ms", 2.0)
        assert var.stats is not None
        assert var.stats.count == 1
        assert var.read().startswith("p50=2.00")

    def test_record_unknown_raises_when_strict(self) -> None:
        live_variable_registry.strict = True
        with pytest.raises(KeyError):
            live_variable_registry.record("missing", 1.0)

    def test_record_on_watched_variable_raises_when_strict(self) -> None:
        live_variable_registry.strict = True
        live_variable_registry.watch("gen.state", lambda: "IDLE")
        with pytest.raises(KeyError):
            live_variable_registry.record("gen.state", 1.0)

    def test_record_unknown_ignored_when_not_strict(self) -> None:
        live_variable_registry.strict = False
        live_variable_registry.record("missing", 1.0)
        assert live_variable_registry.get("missing") is None


class TestSnapshotAndTiming:
    def test_snapshot_lists_watched_before_metrics(self) -> None:
        live_variable_registry.register_metric("a.metric")
        live_variable_registry.watch("b.var", lambda: 0)
        live_variable_registry.watch("a.var", lambda: 1)
        assert list(live_variable_registry.snapshot()) == [
            "a.var",
            "b.var",
            "a.metric",
        ]

    def test_record_time_adds_one_sample(self) -> None:
        var = live_variable_registry.register_metric("timed")
        with record_time("timed"):
            pass
        assert var.stats is not None
        assert var.stats.count == 1
        assert var.stats.latest is not None and var.stats.latest >= 0.0

    def test_record_time_strict_unknown_raises(self) -> None:
        live_variable_registry.strict = True
        with pytest.raises(KeyError), record_time("never.registered"):
            pass
