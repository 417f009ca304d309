# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Prometheus metrics collector implementation."""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


class PrometheusMetricsCollector(MetricsCollector):
    """Prometheus metrics collector.

    All calls to the same metric name must use the same label keys; Prometheus
    rejects a second label set for an existing metric.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "shorty",
                 raise_on_error: bool = False):
        """Initialize Prometheus metrics collector.

        Args:
            registry: Prometheus registry (the process default if None)
            namespace: Namespace prefix for all metrics
            raise_on_error: Re-raise metric errors instead of logging them
        """
        self.registry = registry if registry is not None else REGISTRY
        self.namespace = namespace
        self.raise_on_error = raise_on_error
        self._counters: dict[tuple, Counter] = {}
        self._histograms: dict[tuple, Histogram] = {}
        self._gauges: dict[tuple, Gauge] = {}
        self._metrics_errors_count = 0

    def _get_or_create(self, cache: dict, metric_cls, kind: str, name: str, tags: dict[str, str] | None):
        labelnames = tuple(sorted(tags.keys())) if tags else ()
        cache_key = (name, labelnames)

        if cache_key not in cache:
            cache[cache_key] = metric_cls(
                name=name,
                documentation=f"{kind} metric: {name}",
                labelnames=labelnames,
                namespace=self.namespace,
                registry=self.registry,
            )

        return cache[cache_key]

    def _record(self, action: str, name: str, tags: dict[str, str] | None, apply) -> None:
        try:
            apply()
            logger.debug(f"PrometheusMetricsCollector: {action} {name} with tags {tags}")
        except ValueError as e:
            self._metrics_errors_count += 1
            logger.error(f"Failed to {action} {name}: {e}")
            if self.raise_on_error:
                raise

    def increment(self, name: str, value: float = 1.0, tags: dict[str, str] | None = None) -> None:
        def apply():
            counter = self._get_or_create(self._counters, Counter, "Counter", name, tags)
            (counter.labels(**tags) if tags else counter).inc(value)

        self._record("increment", name, tags, apply)

    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        def apply():
            histogram = self._get_or_create(self._histograms, Histogram, "Histogram", name, tags)
            (histogram.labels(**tags) if tags else histogram).observe(value)

        self._record("observe", name, tags, apply)

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        def apply():
            gauge = self._get_or_create(self._gauges, Gauge, "Gauge", name, tags)
            (gauge.labels(**tags) if tags else gauge).set(value)

        self._record("set gauge", name, tags, apply)

    def get_errors_count(self) -> int:
        """Number of metric calls that failed."""
        return self._metrics_errors_count

    def render(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)
