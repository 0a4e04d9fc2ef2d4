"""Metrics hook protocol and no-op default.

picflow reports counters and timings around uploads, downloads and
placeholder resolution.  Pass any object satisfying :class:`MetricsHook`
as ``PicflowConfig.metrics`` to forward them to StatsD, Prometheus or
similar; by default :class:`NoopMetricsHook` discards them.

Emitted metric names:

* ``picflow.upload_batches_total``          -- counter, tagged by backend/outcome
* ``picflow.upload_success_total``          -- counter (images)
* ``picflow.upload_failure_total``          -- counter (images)
* ``picflow.upload_duration_ms``            -- timing, per batch
* ``picflow.download_success_total``        -- counter
* ``picflow.download_failure_total``        -- counter
* ``picflow.placeholders_resolved_total``   -- counter, tagged by outcome
* ``picflow.source_delete_failures_total``  -- counter
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    *tags* is an optional dict of string keys and values; backends map it
    onto their own labelling scheme.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Metrics backend that discards every data point."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(hook: object | None) -> MetricsHook:
    """Return *hook* if it is usable, else a :class:`NoopMetricsHook`."""
    if hook is not None and isinstance(hook, MetricsHook):
        return hook
    return NoopMetricsHook()
