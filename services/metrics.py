from __future__ import annotations

from threading import Lock
from typing import Tuple


PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"

# name -> HELP text; every counter the service emits is listed here
COUNTERS: dict[str, str] = {
    "http_requests_total": "HTTP requests by route template and status code.",
    "payment_updates_total": "Admin winning edits by result (ok, conflict, invalid_state, ...).",
    "withdrawals_total": "Withdrawal attempts by result.",
    "provider_webhook_events_total": "Provider webhook deliveries by event and outcome.",
    "reconcile_runs_total": "Eligibility reconcile runs, split by whether any payment changed.",
}

_lock = Lock()
_series: dict[str, dict[Tuple[Tuple[str, str], ...], int]] = {}


def _inc(name: str, **labels: str) -> None:
    if name not in COUNTERS:
        raise KeyError(f"unknown counter {name}")
    key = tuple(sorted(labels.items()))
    with _lock:
        bucket = _series.setdefault(name, {})
        bucket[key] = bucket.get(key, 0) + 1


def increment_http_requests(route: str, status: int) -> None:
    _inc("http_requests_total", route=route, status=str(status))


def increment_payment_update(result: str) -> None:
    _inc("payment_updates_total", result=result)


def increment_withdrawal(result: str) -> None:
    _inc("withdrawals_total", result=result)


def increment_webhook_event(event: str, outcome: str) -> None:
    _inc("provider_webhook_events_total", event=event, outcome=outcome)


def increment_reconcile_run(changed: bool) -> None:
    _inc("reconcile_runs_total", changed="true" if changed else "false")


def reset() -> None:
    with _lock:
        _series.clear()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def render_prometheus() -> str:
    """Text exposition of every counter touched since start (or the last reset)."""
    out: list[str] = []
    with _lock:
        for name in sorted(_series):
            out.append(f"# HELP {name} {COUNTERS[name]}")
            out.append(f"# TYPE {name} counter")
            for labels, value in sorted(_series[name].items()):
                rendered = ",".join(f'{k}="{_escape(v)}"' for k, v in labels)
                out.append(f"{name}{{{rendered}}} {value}" if rendered else f"{name} {value}")
    return "\n".join(out) + "\n" if out else ""
