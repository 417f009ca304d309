# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Shorty Metrics Adapter.

Pluggable counters/histograms/gauges for the identity service. The no-op
collector keeps everything in memory (tests, local runs); the Prometheus
collector exposes the same calls through ``prometheus_client``.
"""

__version__ = "0.1.0"

from .metrics import MetricsCollector, create_metrics_collector
from .noop_metrics import NoOpMetricsCollector

__all__ = [
    "__version__",
    "MetricsCollector",
    "NoOpMetricsCollector",
    "create_metrics_collector",
]
