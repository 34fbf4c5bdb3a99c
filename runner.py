"""
runner.py

ALB latency percentile plugin runner (discover -> collect -> emit).

Single-shot mode (default, what the agent runs every minute):
  discovery once, one collection cycle, metric lines on stdout, exit.
  Any discovery or collection error exits non-zero with nothing on stdout.

Loop mode (--interval N, or --interval alone for ALB_INTERVAL_SECONDS):
  one collection cycle every N seconds until SIGINT/SIGTERM. A failing cycle
  is logged and the next tick retries. Target groups are re-discovered every
  ``discovery_refresh_seconds`` and after any discovery failure.

Graph definitions:
  with MACKEREL_AGENT_PLUGIN_META=1 the graph definitions are printed instead
  of values, without calling AWS.

Examples:
python runner.py -lbname app/my-lb/abc123 -region eu-west-3
python runner.py --lbname app/my-lb/abc123 --metric-key-prefix alb --tempfile /tmp/mackerel-plugin-alb
python runner.py --interval 60
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import IO, Any, Optional

from checks.aws._common import now_utc
from checks.aws.alb_discovery import discover
from checks.aws.alb_latency_collector import collect
from contracts.alb_metrics import MetricSnapshot, Scope, TargetGroupSet
from contracts.errors import AlbMetricsError, CollectionCancelled
from contracts.graph_definitions import graph_definitions
from contracts.services import ServicesFactory, make_session
from infra.aws_config import build_sdk_config, resolve_region
from infra.config import PluginConfig, Settings, ValidationError, get_settings
from infra.logging_config import StructuredLogger, clear_cycle_context, set_cycle_context, setup_logging
from pipeline.mackerel_output import emit_graph_definitions, emit_metrics, wants_graph_definitions
from pipeline.state_file import SnapshotState, write_state
from version import ENGINE_NAME, ENGINE_VERSION

LOG = StructuredLogger("runner")


def _metric_key_prefix(value: str) -> str:
    """Validate a flag prefix with the same rule as the settings field."""
    if not value.strip():
        return ""
    try:
        return PluginConfig(metric_key_prefix=value).metric_key_prefix
    except ValidationError as exc:
        raise argparse.ArgumentTypeError(
            f"invalid metric key prefix {value!r}: dot-separated segments of [A-Za-z0-9_-]"
        ) from exc


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Emit ALB TargetResponseTime percentiles (load balancer and per target group)."
    )
    # Single-dash spellings match the agent plugin convention.
    parser.add_argument("-region", "--region", dest="region", default="", help="AWS Region")
    parser.add_argument(
        "-lbname", "--lbname", dest="lbname", default="",
        help="LoadBalancer dimension value (app/<name>/<hash>). Omit for all load balancers.",
    )
    parser.add_argument("-access-key-id", "--access-key-id", dest="access_key_id", default="", help="AWS Access Key ID")
    parser.add_argument(
        "-secret-access-key", "--secret-access-key", dest="secret_access_key", default="",
        help="AWS Secret Access Key",
    )
    parser.add_argument("-tempfile", "--tempfile", dest="tempfile", default="", help="Temp file name")
    parser.add_argument(
        "-metric-key-prefix", "--metric-key-prefix", dest="metric_key_prefix", default=None,
        type=_metric_key_prefix,
        help="Metric key prefix (default: alb)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        nargs="?",
        const=None,
        default=0,
        help=(
            "Run continuously, one cycle every N seconds (default: single cycle). "
            "Without N the period comes from ALB_INTERVAL_SECONDS."
        ),
    )
    parser.add_argument(
        "--print-version",
        action="store_true",
        help="Print plugin name/version and exit.",
    )
    return parser.parse_args(argv)


def build_scope(args: argparse.Namespace, settings: Settings) -> Scope:
    """Merge CLI flags over settings into the immutable run scope."""
    aws = settings.aws
    plugin = settings.plugin
    return Scope(
        load_balancer=(args.lbname or "").strip() or plugin.lb_name,
        region=resolve_region(args.region, aws.region),
        access_key_id=(args.access_key_id or "").strip() or aws.access_key_id,
        secret_access_key=(args.secret_access_key or "").strip() or aws.secret_access_key,
        prefix=(args.metric_key_prefix or "").strip() or plugin.metric_key_prefix,
    )


def _emit(
    snapshot: MetricSnapshot,
    *,
    collected_at: datetime,
    out: IO[str],
    state_path: Optional[str],
) -> int:
    written = emit_metrics(snapshot, collected_at=collected_at, out=out)
    if state_path:
        # Metric lines are already out; a failed write only loses the record.
        try:
            write_state(state_path, SnapshotState.from_snapshot(snapshot, collected_at=collected_at))
        except OSError as exc:
            LOG.warning("alb_state_write_failed", path=state_path, error=str(exc))
    return written


def loop_interval(args: argparse.Namespace, settings: Settings) -> int:
    """Loop period in seconds; 0 means a single cycle."""
    if args.interval is None:
        return settings.plugin.interval_seconds
    return max(0, int(args.interval))


def run_once(
    scope: Scope,
    cloudwatch: Any,
    *,
    out: IO[str],
    state_path: Optional[str] = None,
    clock: Callable[[], datetime] = now_utc,
) -> int:
    """Discovery then one collection cycle. Raises on any failure."""
    target_groups = discover(scope, cloudwatch)
    collected_at = clock()
    snapshot = collect(scope, target_groups, cloudwatch, now=collected_at)
    written = _emit(snapshot, collected_at=collected_at, out=out, state_path=state_path)
    LOG.info("alb_collection_completed", target_groups=len(target_groups), metrics=written)
    return written


class CollectionLoop:
    """
    Long-running variant: one cycle per tick, cached target groups.

    Nothing survives a cycle except the target group cache, so a cancelled or
    failed cycle leaves no partial state behind.
    """

    def __init__(
        self,
        *,
        scope: Scope,
        cloudwatch: Any,
        out: IO[str],
        interval_seconds: int,
        discovery_refresh_seconds: int,
        state_path: Optional[str] = None,
        stop: Optional[threading.Event] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._scope = scope
        self._cloudwatch = cloudwatch
        self._out = out
        self._interval = max(1, int(interval_seconds))
        self._refresh = timedelta(seconds=max(0, int(discovery_refresh_seconds)))
        self._state_path = state_path
        self.stop = stop or threading.Event()
        self._clock = clock
        self._target_groups: TargetGroupSet | None = None
        self._discovered_at: datetime | None = None
        self.cycles = 0
        self.failures = 0

    def _discovery_due(self, now: datetime) -> bool:
        if self._target_groups is None or self._discovered_at is None:
            return True
        if not self._refresh:
            return False
        return now - self._discovered_at >= self._refresh

    def _target_groups_for(self, now: datetime) -> TargetGroupSet:
        if self._discovery_due(now):
            self._target_groups = None
            self._target_groups = discover(self._scope, self._cloudwatch)
            self._discovered_at = now
        return self._target_groups or ()

    def tick(self) -> bool:
        """Run one cycle; True when metrics were emitted."""
        self.cycles += 1
        clear_cycle_context()
        set_cycle_context(cycle=self.cycles, load_balancer=self._scope.load_balancer or "*")
        now = self._clock()
        try:
            target_groups = self._target_groups_for(now)
            snapshot = collect(self._scope, target_groups, self._cloudwatch, now=now, cancel=self.stop)
            written = _emit(snapshot, collected_at=now, out=self._out, state_path=self._state_path)
        except CollectionCancelled:
            LOG.info("alb_collection_cancelled")
            return False
        except AlbMetricsError as exc:
            self.failures += 1
            LOG.error("alb_collection_failed", error_type=type(exc).__name__, error=str(exc))
            return False
        finally:
            clear_cycle_context()
        LOG.info("alb_collection_completed", target_groups=len(target_groups), metrics=written)
        return True

    def run(self) -> int:
        LOG.info("alb_loop_started", interval_seconds=self._interval)
        while not self.stop.is_set():
            self.tick()
            self.stop.wait(self._interval)
        LOG.info("alb_loop_stopped", cycles=self.cycles, failures=self.failures)
        return 0


def _install_stop_handlers(stop: threading.Event) -> None:
    def _handler(signum: int, _frame: Any) -> None:
        LOG.info("alb_stop_requested", signal=signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: Sequence[str], *, out: IO[str] | None = None, cloudwatch: Any = None) -> int:
    args = _parse_args(argv)
    stream = out or sys.stdout

    if args.print_version:
        print(f"ENGINE_NAME={ENGINE_NAME}", file=stream)
        print(f"ENGINE_VERSION={ENGINE_VERSION}", file=stream)
        return 0

    setup_logging()
    settings = get_settings()

    if wants_graph_definitions():
        prefix = (args.metric_key_prefix or "").strip() or settings.plugin.metric_key_prefix
        emit_graph_definitions(graph_definitions(prefix), out=stream)
        return 0

    scope = build_scope(args, settings)
    if cloudwatch is None:
        factory = ServicesFactory(session=make_session(scope), sdk_config=build_sdk_config(settings.aws))
        cloudwatch = factory.for_region(scope.region).cloudwatch

    state_path = (args.tempfile or "").strip() or settings.plugin.tempfile
    interval = loop_interval(args, settings)

    if interval > 0:
        loop = CollectionLoop(
            scope=scope,
            cloudwatch=cloudwatch,
            out=stream,
            interval_seconds=interval,
            discovery_refresh_seconds=settings.plugin.discovery_refresh_seconds,
            state_path=state_path,
        )
        _install_stop_handlers(loop.stop)
        return loop.run()

    try:
        run_once(scope, cloudwatch, out=stream, state_path=state_path)
    except AlbMetricsError as exc:
        LOG.error("alb_collection_failed", error_type=type(exc).__name__, error=str(exc))
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
