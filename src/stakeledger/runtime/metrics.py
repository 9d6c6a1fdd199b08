from __future__ import annotations

import os
import threading
import time
from typing import Dict


_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("STAKELEDGER_METRICS_ENABLED") or "").strip().lower()
    if not v:
        return False
    return v in {"1", "true", "yes", "y", "on"}


def _metric_name(name: str) -> str:
    # prometheus names: [a-zA-Z_:][a-zA-Z0-9_:]*
    out = []
    for ch in str(name or "").strip():
        out.append(ch if (ch.isalnum() or ch in "_:") else "_")
    return "".join(out)


def inc_counter(name: str, value: int = 1) -> None:
    n = _metric_name(name)
    if not n:
        return
    try:
        v = int(value)
    except Exception:
        v = 1
    with _lock:
        _counters[n] = int(_counters.get(n, 0)) + int(v)


def set_gauge(name: str, value: int) -> None:
    n = _metric_name(name)
    if not n:
        return
    try:
        v = int(value)
    except Exception:
        v = 0
    with _lock:
        _gauges[n] = int(v)


def record_payout(stream: str, amount: int) -> None:
    """Count one settlement payout of `stream` (base | delegation | lost)."""
    inc_counter(f"payouts_{stream}_count")
    inc_counter(f"payouts_{stream}_amount", int(amount))


def record_rejection(code: str, reason: str) -> None:
    inc_counter("rejected_total")
    inc_counter(f"rejected_{code}_{reason}")


def counter(name: str) -> int:
    with _lock:
        return int(_counters.get(_metric_name(name), 0))


def reset() -> None:
    """Drop all counters and gauges (tests)."""
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    with _lock:
        return {
            "ts_ms": int(time.time() * 1000),
            "started_ms": int(_started_ms),
            "uptime_ms": int(time.time() * 1000) - int(_started_ms),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
        }


def format_prometheus(prefix: str = "stakeledger_") -> str:
    """Prometheus exposition text: integer counters and gauges only."""
    pre = str(prefix or "").strip() or "stakeledger_"
    snap = snapshot()
    lines: list[str] = [f"{pre}uptime_ms {int(snap.get('uptime_ms') or 0)}"]

    for kind, values in (("counter", snap["counters"]), ("gauge", snap["gauges"])):
        for name in sorted(values.keys()):
            lines.append(f"# TYPE {pre}{name} {kind}")
            lines.append(f"{pre}{name} {int(values[name])}")

    return "\n".join(lines) + "\n"
