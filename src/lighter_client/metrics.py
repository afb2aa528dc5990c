"""
Prometheus metrics exporter for the streaming connections.

Exports low-cardinality metrics only: counters aggregate over every
connection passed to update(), no channel or market labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

from lighter_client.ws.types import ConnectionState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from lighter_client.ws.types import StreamMetrics

# StreamMetrics field -> (metric name, help text)
_COUNTERS: dict[str, tuple[str, str]] = {
    "frames_received": ("lighter_ws_frames_received", "Text/binary frames read from the socket"),
    "frames_dropped": ("lighter_ws_frames_dropped", "Frames dropped as malformed or untyped"),
    "error_frames": ("lighter_ws_error_frames", "Frames carrying an exchange error code"),
    "callback_errors": ("lighter_ws_callback_errors", "Exceptions raised by subscriber callbacks"),
    "pings_sent": ("lighter_ws_pings_sent", "Heartbeat pings written"),
    "pongs_sent": ("lighter_ws_pongs_sent", "Pongs written in answer to server pings"),
    "disconnects": ("lighter_ws_disconnects", "Unintentional connection losses"),
    "resubscribes": ("lighter_ws_resubscribes", "Subscribe frames replayed after reconnect"),
}


class MetricsExporter:
    """
    Sync StreamMetrics into Prometheus counters and gauges.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update([public.metrics, private.metrics])
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics exporter.

        Args:
            registry: Prometheus CollectorRegistry. A private one is created if None.
        """
        self._registry = registry or CollectorRegistry()

        self._counters: dict[str, Counter] = {
            field: Counter(name, help_text, registry=self._registry)
            for field, (name, help_text) in _COUNTERS.items()
        }
        self._connected = Gauge(
            "lighter_ws_connected",
            "Number of stream connections currently open",
            registry=self._registry,
        )

        # Counters are monotonic: remember the last seen totals and add deltas
        self._last: dict[str, int] = dict.fromkeys(_COUNTERS, 0)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def update(self, stream_metrics: Iterable[StreamMetrics]) -> None:
        """
        Update metrics from the current connection counters.

        Call periodically (e.g., on a timer or before each scrape).

        Args:
            stream_metrics: Metrics of every connection to aggregate.
        """
        snapshot = list(stream_metrics)
        self._connected.set(sum(1 for m in snapshot if m.state == ConnectionState.CONNECTED))

        for field, counter in self._counters.items():
            current = sum(getattr(m, field) for m in snapshot)
            delta = current - self._last[field]
            if delta > 0:
                counter.inc(delta)
            self._last[field] = current

    def reset_counter_tracking(self) -> None:
        """
        Reset internal delta tracking (after connections are replaced).

        Does NOT reset the Prometheus counters themselves.
        """
        self._last = dict.fromkeys(_COUNTERS, 0)


# Counters are exported with the _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {f"{name}_total" for name, _ in _COUNTERS.values()} | {"lighter_ws_connected"}
)
