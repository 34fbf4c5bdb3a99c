"""Tests for runner wiring: single-shot, graph definitions and loop mode."""

from __future__ import annotations

import io
import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

import runner
from contracts.alb_metrics import Scope
from infra.config import Settings, clear_settings_cache
from tests.aws_mocks import FakeCloudWatch, dimension_key, recent_datapoints, tg_metric

LB = "app/my-lb/abc123"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> Any:
    for name in (
        "MACKEREL_AGENT_PLUGIN_META",
        "ALB_LB_NAME",
        "ALB_METRIC_KEY_PREFIX",
        "ALB_TEMPFILE",
        "PLUGIN__LB_NAME",
        "PLUGIN__METRIC_KEY_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


def _cloudwatch(now: datetime, **kwargs: Any) -> FakeCloudWatch:
    return FakeCloudWatch(
        metric_pages=[{"Metrics": [tg_metric("targetgroup/tg-a/111"), tg_metric("targetgroup/tg-b/222")]}],
        default_datapoints=recent_datapoints(now, 0.125),
        **kwargs,
    )


def test_single_shot_prints_all_metrics(tmp_path: Path) -> None:
    out = io.StringIO()
    state = tmp_path / "mackerel-plugin-alb"
    cw = _cloudwatch(datetime.now(timezone.utc))

    rc = runner.main(
        ["-region", "eu-west-3", "-lbname", LB, "-tempfile", str(state)],
        out=out,
        cloudwatch=cw,
    )

    assert rc == 0
    keys = [line.split("\t")[0] for line in out.getvalue().splitlines()]
    assert len(keys) == 15
    assert "alb.tg-a.p99" in keys and "alb.p99" in keys
    assert json.loads(state.read_text(encoding="utf-8"))["alb.tg-b.p50"] == 0.125


def test_single_shot_failure_prints_nothing_and_exits_non_zero(tmp_path: Path) -> None:
    out = io.StringIO()
    state = tmp_path / "state"
    cw = _cloudwatch(
        datetime.now(timezone.utc), raise_on="get_metric_statistics", raise_after=2
    )

    rc = runner.main(["--region", "eu-west-3", "--lbname", LB, "--tempfile", str(state)], out=out, cloudwatch=cw)

    assert rc == 1
    assert out.getvalue() == ""
    assert not state.exists()


def test_discovery_failure_is_fatal_in_single_shot() -> None:
    out = io.StringIO()
    cw = FakeCloudWatch(raise_on="list_metrics")

    assert runner.main(["--region", "eu-west-3"], out=out, cloudwatch=cw) == 1
    assert out.getvalue() == ""
    assert cw.stats_calls == []


def test_graph_definitions_mode_skips_aws(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MACKEREL_AGENT_PLUGIN_META", "1")
    out = io.StringIO()
    cw = FakeCloudWatch(raise_on="list_metrics")

    rc = runner.main(["--metric-key-prefix", "web"], out=out, cloudwatch=cw)

    assert rc == 0
    header, body = out.getvalue().strip().split("\n", 1)
    assert header == "# mackerel-agent-plugin"
    assert set(json.loads(body)["graphs"]) == {"web", "web.#"}
    assert cw.list_calls == []


def test_print_version() -> None:
    out = io.StringIO()
    assert runner.main(["--print-version"], out=out) == 0
    assert "ENGINE_VERSION=" in out.getvalue()


def test_build_scope_flags_override_settings() -> None:
    settings = Settings.from_env(
        env={"ALB_LB_NAME": "app/env/1", "AWS_REGION": "us-east-1", "ALB_METRIC_KEY_PREFIX": "envp"},
        env_file=".missing.env",
    )
    args = runner._parse_args(["-lbname", LB, "-region", "eu-west-3"])

    scope = runner.build_scope(args, settings)

    assert scope == Scope(load_balancer=LB, region="eu-west-3", prefix="envp")


def test_build_scope_falls_back_to_settings() -> None:
    settings = Settings.from_env(
        env={"ALB_LB_NAME": "app/env/1", "AWS_REGION": "us-east-1"},
        env_file=".missing.env",
    )
    scope = runner.build_scope(runner._parse_args([]), settings)

    assert scope.load_balancer == "app/env/1"
    assert scope.region == "us-east-1"
    assert scope.prefix == "alb"


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def test_loop_caches_discovery_and_refreshes_after_interval() -> None:
    clock = _Clock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))
    cw = _cloudwatch(clock.now)
    loop = runner.CollectionLoop(
        scope=Scope(load_balancer=LB),
        cloudwatch=cw,
        out=io.StringIO(),
        interval_seconds=60,
        discovery_refresh_seconds=600,
        clock=clock,
    )

    assert loop.tick() is True
    clock.now += timedelta(minutes=1)
    assert loop.tick() is True
    assert len(cw.list_calls) == 1

    clock.now += timedelta(minutes=10)
    assert loop.tick() is True
    assert len(cw.list_calls) == 2


def test_loop_cycle_failure_is_logged_and_next_tick_retries() -> None:
    now = datetime.now(timezone.utc)
    tg_dims = [{"Name": "TargetGroup", "Value": "targetgroup/tg-a/111"}, {"Name": "LoadBalancer", "Value": LB}]
    cw = FakeCloudWatch(
        metric_pages=[{"Metrics": [tg_metric("targetgroup/tg-a/111")]}],
        datapoints_by_dims={dimension_key(tg_dims): []},
        default_datapoints=recent_datapoints(now, 0.5),
    )
    out = io.StringIO()
    loop = runner.CollectionLoop(
        scope=Scope(load_balancer=LB),
        cloudwatch=cw,
        out=out,
        interval_seconds=60,
        discovery_refresh_seconds=600,
    )

    assert loop.tick() is False
    assert loop.failures == 1
    assert out.getvalue() == ""

    cw._datapoints_by_dims.clear()
    assert loop.tick() is True
    assert "alb.tg-a.p99" in out.getvalue()


def test_loop_rediscovers_after_discovery_failure() -> None:
    now = datetime.now(timezone.utc)
    cw = _cloudwatch(now, raise_on="list_metrics")
    loop = runner.CollectionLoop(
        scope=Scope(load_balancer=LB),
        cloudwatch=cw,
        out=io.StringIO(),
        interval_seconds=60,
        discovery_refresh_seconds=600,
    )

    assert loop.tick() is False
    assert cw.stats_calls == []

    cw._raise_on = None
    assert loop.tick() is True
    assert len(cw.list_calls) == 1


def test_loop_exits_when_stop_is_set() -> None:
    stop = threading.Event()
    stop.set()
    cw = _cloudwatch(datetime.now(timezone.utc))
    loop = runner.CollectionLoop(
        scope=Scope(load_balancer=LB),
        cloudwatch=cw,
        out=io.StringIO(),
        interval_seconds=60,
        discovery_refresh_seconds=600,
        stop=stop,
    )

    assert loop.run() == 0
    assert loop.cycles == 0


def test_loop_keeps_running_when_state_file_cannot_be_written(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    out = io.StringIO()
    loop = runner.CollectionLoop(
        scope=Scope(load_balancer=LB),
        cloudwatch=_cloudwatch(datetime.now(timezone.utc)),
        out=out,
        interval_seconds=60,
        discovery_refresh_seconds=600,
        state_path=str(blocker / "state"),
    )

    assert loop.tick() is True
    assert loop.tick() is True
    assert loop.failures == 0
    assert len(out.getvalue().splitlines()) == 30


def test_single_shot_state_write_failure_still_exits_zero(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    out = io.StringIO()

    rc = runner.main(
        ["-region", "eu-west-3", "-lbname", LB, "-tempfile", str(blocker / "state")],
        out=out,
        cloudwatch=_cloudwatch(datetime.now(timezone.utc)),
    )

    assert rc == 0
    assert len(out.getvalue().splitlines()) == 15


@pytest.mark.parametrize("prefix", ["a b..c", "web/alb", "x..y"])
def test_invalid_flag_prefix_is_rejected(prefix: str, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        runner._parse_args(["-metric-key-prefix", prefix])

    assert excinfo.value.code == 2
    assert "invalid metric key prefix" in capsys.readouterr().err


def test_flag_prefix_is_normalized_like_settings() -> None:
    args = runner._parse_args(["--metric-key-prefix", "web.alb."])
    scope = runner.build_scope(args, Settings.from_env(env={}, env_file=".missing.env"))

    assert scope.prefix == "web.alb"


def test_blank_flag_prefix_falls_back_to_settings() -> None:
    settings = Settings.from_env(env={"ALB_METRIC_KEY_PREFIX": "envp"}, env_file=".missing.env")
    scope = runner.build_scope(runner._parse_args(["-metric-key-prefix", " "]), settings)

    assert scope.prefix == "envp"


def test_interval_flag_without_value_reads_settings() -> None:
    settings = Settings.from_env(env={"ALB_INTERVAL_SECONDS": "30"}, env_file=".missing.env")

    assert runner.loop_interval(runner._parse_args(["--interval"]), settings) == 30
    assert runner.loop_interval(runner._parse_args(["--interval", "5"]), settings) == 5
    assert runner.loop_interval(runner._parse_args([]), settings) == 0
