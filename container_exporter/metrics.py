"""
Prometheus metrics definitions for container statistics.

MetricsRegistry owns every series the exporter publishes. The collection loop
is the only writer; HTTP scrapes read through export(). Both go through one
lock so a scrape never sees a half-applied collection cycle.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from container_exporter.labels import (
    KIND_CONTAINER,
    KIND_FILESYSTEM,
    KIND_INFO,
    KIND_NETWORK,
    SCHEMA_COMPOSE,
    label_names,
)

logger = logging.getLogger(__name__)

CONTAINER_PREFIX = 'container_'
DATA_PREFIX = 'container_data_'

# Per-container resource usage
PIDS = CONTAINER_PREFIX + 'pids'
CPU_USAGE_USER = CONTAINER_PREFIX + 'cpu_usage_user_seconds_total'
CPU_USAGE_KERNEL = CONTAINER_PREFIX + 'cpu_usage_kernel_seconds_total'
CPU_USAGE_TOTAL = CONTAINER_PREFIX + 'cpu_usage_seconds_total'
MEMORY_USAGE = CONTAINER_PREFIX + 'memory_usage_bytes'
MEMORY_LIMIT = CONTAINER_PREFIX + 'memory_limit_bytes'

# Per-interface network counters
NETWORK_RECEIVE_BYTES = CONTAINER_PREFIX + 'network_receive_bytes_total'
NETWORK_TRANSMIT_BYTES = CONTAINER_PREFIX + 'network_transmit_bytes_total'
NETWORK_RECEIVE_PACKETS = CONTAINER_PREFIX + 'network_receive_packets_total'
NETWORK_TRANSMIT_PACKETS = CONTAINER_PREFIX + 'network_transmit_packets_total'
NETWORK_RECEIVE_ERRORS = CONTAINER_PREFIX + 'network_receive_errors_total'
NETWORK_TRANSMIT_ERRORS = CONTAINER_PREFIX + 'network_transmit_errors_total'
NETWORK_RECEIVE_DROPPED = CONTAINER_PREFIX + 'network_receive_dropped_total'
NETWORK_TRANSMIT_DROPPED = CONTAINER_PREFIX + 'network_transmit_dropped_total'

# Identity and state flags, value is always 1
CONTAINER_INFO = CONTAINER_PREFIX + 'info'

# Filesystem capacity under the base path
DATA_FREE = DATA_PREFIX + 'free_bytes'
DATA_AVAILABLE = DATA_PREFIX + 'available_bytes'
DATA_SIZE = DATA_PREFIX + 'size_bytes'
DATA_INODES_FREE = DATA_PREFIX + 'inodes_free'
DATA_INODES = DATA_PREFIX + 'inodes'

SERIES_HELP = {
    PIDS: 'Number of running processes in the container',
    CPU_USAGE_USER: 'Container CPU usage in user mode',
    CPU_USAGE_KERNEL: 'Container CPU usage in kernel mode',
    CPU_USAGE_TOTAL: 'Container CPU usage',
    MEMORY_USAGE: 'Container Memory usage',
    MEMORY_LIMIT: 'Container Memory limit',
    NETWORK_RECEIVE_BYTES: 'Container network received bytes',
    NETWORK_TRANSMIT_BYTES: 'Container network transmitted bytes',
    NETWORK_RECEIVE_PACKETS: 'Container network received packets',
    NETWORK_TRANSMIT_PACKETS: 'Container network transmitted packets',
    NETWORK_RECEIVE_ERRORS: 'Container network receive errors',
    NETWORK_TRANSMIT_ERRORS: 'Container network transmit errors',
    NETWORK_RECEIVE_DROPPED: 'Container network receive drops',
    NETWORK_TRANSMIT_DROPPED: 'Container network transmit drops',
    CONTAINER_INFO: 'Container info',
    DATA_FREE: 'Free bytes on the filesystem',
    DATA_AVAILABLE: 'Bytes available to unprivileged users on the filesystem',
    DATA_SIZE: 'Total size of the filesystem in bytes',
    DATA_INODES_FREE: 'Free inodes on the filesystem',
    DATA_INODES: 'Total inodes on the filesystem',
}

SERIES_BY_KIND = {
    KIND_CONTAINER: [
        PIDS, CPU_USAGE_USER, CPU_USAGE_KERNEL, CPU_USAGE_TOTAL,
        MEMORY_USAGE, MEMORY_LIMIT,
    ],
    KIND_NETWORK: [
        NETWORK_RECEIVE_BYTES, NETWORK_TRANSMIT_BYTES,
        NETWORK_RECEIVE_PACKETS, NETWORK_TRANSMIT_PACKETS,
        NETWORK_RECEIVE_ERRORS, NETWORK_TRANSMIT_ERRORS,
        NETWORK_RECEIVE_DROPPED, NETWORK_TRANSMIT_DROPPED,
    ],
    KIND_INFO: [CONTAINER_INFO],
    KIND_FILESYSTEM: [
        DATA_FREE, DATA_AVAILABLE, DATA_SIZE, DATA_INODES_FREE, DATA_INODES,
    ],
}


class MetricsRegistry:
    """
    Named gauge series keyed by label sets.

    A dedicated CollectorRegistry is used so the default process and
    platform collectors are not exported alongside container data.
    """

    def __init__(self, schema: str = SCHEMA_COMPOSE, registry: Optional[CollectorRegistry] = None):
        """
        Args:
            schema: Label schema for container and network series
            registry: Optional CollectorRegistry to register into
        """
        self.schema = schema
        self.registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.RLock()
        self._gauges: Dict[str, Gauge] = {}
        self._label_names: Dict[str, List[str]] = {}
        self._kinds: Dict[str, str] = {}

        for kind, series_names in SERIES_BY_KIND.items():
            names = label_names(kind, schema)
            for series in series_names:
                self._gauges[series] = Gauge(
                    series,
                    SERIES_HELP[series],
                    names,
                    registry=self.registry
                )
                self._label_names[series] = names
                self._kinds[series] = kind

        # Exporter health metrics
        self.cycle_duration_seconds = Gauge(
            'container_exporter_cycle_duration_seconds',
            'Time taken by the last collection cycle',
            registry=self.registry
        )
        self.containers_scraped = Gauge(
            'container_exporter_containers_scraped',
            'Number of containers successfully sampled in the last cycle',
            registry=self.registry
        )
        self.errors_total = Counter(
            'container_exporter_errors_total',
            'Total number of collection errors',
            ['error_type'],
            registry=self.registry
        )

        logger.debug(f"Registered {len(self._gauges)} series with schema '{schema}'")

    def series_for(self, kind: str) -> List[str]:
        """Series names that belong to an entity kind."""
        return list(SERIES_BY_KIND[kind])

    def _values(self, series: str, labels: Dict[str, str]) -> List[str]:
        try:
            return [labels[name] for name in self._label_names[series]]
        except KeyError as e:
            raise ValueError(f"Label set for {series} is missing {e}") from e

    def set(self, series: str, labels: Dict[str, str], value: float):
        """Create or overwrite the value of one series entry."""
        gauge = self._gauges[series]
        with self._lock:
            gauge.labels(*self._values(series, labels)).set(value)

    def remove(self, series: str, labels: Dict[str, str]):
        """Remove one series entry; absent entries are ignored."""
        gauge = self._gauges[series]
        with self._lock:
            try:
                gauge.remove(*self._values(series, labels))
            except KeyError:
                logger.debug(f"No {series} entry for {labels}")

    def remove_all(self, kind: str, labels: Dict[str, str]):
        """Remove a label set from every series of an entity kind."""
        with self._lock:
            for series in SERIES_BY_KIND[kind]:
                self.remove(series, labels)

    def record_error(self, error_type: str):
        self.errors_total.labels(error_type=error_type).inc()

    @contextmanager
    def transaction(self) -> Iterator['MetricsRegistry']:
        """Hold the registry lock across a batch of writes and removals."""
        with self._lock:
            yield self

    def export(self) -> bytes:
        """Render every series in the Prometheus text format."""
        with self._lock:
            return generate_latest(self.registry)

    def label_sets(self, series: str) -> List[Dict[str, str]]:
        """Live label sets of one series."""
        gauge = self._gauges[series]
        with self._lock:
            return [
                dict(sample.labels)
                for family in gauge.collect()
                for sample in family.samples
                if sample.name == series
            ]

    def get_value(self, series: str, labels: Dict[str, str]) -> Optional[float]:
        """Current value of one series entry, or None."""
        with self._lock:
            return self.registry.get_sample_value(series, labels)
