"""Last-emitted snapshot state file.

The agent passes ``-tempfile``; the plugin keeps the last successfully emitted
snapshot there, in the agent plugin layout::

    {"_lastTime": 1760870400, "alb.p99": 0.123, "alb.tg-a.p99": 0.120}

None of the latency percentiles are counters, so the plugin never reads the
file back to compute differences. It is written so operators can see the
last good values when a cycle starts failing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from contracts.alb_metrics import MetricSnapshot

LAST_TIME_KEY = "_lastTime"


@dataclass(frozen=True)
class SnapshotState:
    """A snapshot plus the instant it was collected."""

    last_time: int
    values: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {LAST_TIME_KEY: int(self.last_time)}
        for key in sorted(self.values):
            d[key] = float(self.values[key])
        return d

    @classmethod
    def from_snapshot(cls, snapshot: MetricSnapshot, *, collected_at: datetime) -> SnapshotState:
        return cls(last_time=int(collected_at.timestamp()), values=snapshot.to_dict())


def write_state(path: str | Path, state: SnapshotState) -> Path:
    """Write *state* to *path* (atomically best-effort)."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")

    tmp.write_text(json.dumps(state.to_dict(), ensure_ascii=False), encoding="utf-8")
    tmp.replace(p)
    return p

