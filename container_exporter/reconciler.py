"""
Collection cycle that keeps the metrics registry in step with the containers
and filesystems that currently exist.

Each cycle runs in two phases:

1. observe: talk to Docker and stat filesystems, building the label sets seen
   this cycle and the gauge values to write. The registry is not touched.
2. apply: under the registry lock, write the values, remove every label set
   recorded last cycle that is no longer live, and keep this cycle's snapshot
   for the next diff.

An entity that is still listed but could not be sampled keeps its previous
label sets (and therefore its previous values) until it is either sampled
again or no longer listed.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Hashable, List, Optional, Tuple

from container_exporter import filesystem, labels as label_keys
from container_exporter import metrics
from container_exporter.docker_client import DockerStatsCollector, UsageSnapshot
from container_exporter.errors import CycleError, EntityError, LabelContractError
from container_exporter.labels import (
    KIND_CONTAINER,
    KIND_FILESYSTEM,
    KIND_INFO,
    KIND_NETWORK,
    SCHEMA_COMPOSE,
    ContainerDescriptor,
    ContainerState,
)
from container_exporter.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

KINDS = (KIND_CONTAINER, KIND_NETWORK, KIND_INFO, KIND_FILESYSTEM)

# Kinds whose identity key starts with the container ID
CONTAINER_KINDS = (KIND_CONTAINER, KIND_NETWORK, KIND_INFO)

LabelSet = Dict[str, str]


def _frozen(labels: LabelSet) -> FrozenSet[Tuple[str, str]]:
    return frozenset(labels.items())


def _owner(key: Hashable) -> Hashable:
    """Container ID (or mount path) an identity key belongs to."""
    return key[0] if isinstance(key, tuple) else key


@dataclass
class CycleSnapshot:
    """Identity key to label set, per entity kind, for one cycle."""
    entries: Dict[str, Dict[Hashable, LabelSet]] = field(
        default_factory=lambda: {kind: {} for kind in KINDS}
    )

    def add(self, kind: str, key: Hashable, labels: LabelSet):
        self.entries[kind][key] = labels

    def get(self, kind: str) -> Dict[Hashable, LabelSet]:
        return self.entries[kind]

    def carry_forward(self, previous: 'CycleSnapshot', kinds, owner: Hashable) -> int:
        """Copy the previous cycle's entries that belong to one owner."""
        carried = 0
        for kind in kinds:
            for key, labels in previous.get(kind).items():
                if _owner(key) == owner:
                    self.entries[kind][key] = labels
                    carried += 1
        return carried

    def __len__(self):
        return sum(len(entries) for entries in self.entries.values())


@dataclass
class Observation:
    """Everything one observe phase produced."""
    snapshot: CycleSnapshot
    writes: List[Tuple[str, LabelSet, float]] = field(default_factory=list)
    containers_listed: int = 0
    containers_scraped: int = 0
    mounts_sampled: int = 0
    errors: int = 0

    def write(self, series: str, labels: LabelSet, value: float):
        self.writes.append((series, labels, float(value)))


class Reconciler:
    """Runs collection cycles against a MetricsRegistry."""

    def __init__(
        self,
        collector: DockerStatsCollector,
        registry: MetricsRegistry,
        base_path: str = '/',
        schema: str = SCHEMA_COMPOSE,
        track_info: bool = True,
        interval: float = 5.0,
    ):
        """
        Args:
            collector: Docker client wrapper
            registry: Registry to keep in step with observed entities
            base_path: Directory scanned for filesystem capacity
            schema: Label schema for container and network series
            track_info: Whether to inspect containers and publish container_info
            interval: Minimum seconds between cycle starts
        """
        self.collector = collector
        self.registry = registry
        self.base_path = base_path
        self.schema = schema
        self.track_info = track_info
        self.interval = interval
        self.cycle_count = 0
        self.last_cycle_at: Optional[float] = None
        self._previous = CycleSnapshot()

    @property
    def previous_snapshot(self) -> CycleSnapshot:
        return self._previous

    def _record(self, observation: Observation, error):
        observation.errors += 1
        self.registry.record_error(error.error_type)

    # ------------------------------------------------------------------
    # Observe
    # ------------------------------------------------------------------

    def observe(self) -> Observation:
        """Sample every container and mount without touching the registry."""
        observation = Observation(snapshot=CycleSnapshot())
        self._observe_containers(observation)
        self._observe_filesystems(observation)
        return observation

    def _observe_containers(self, observation: Observation):
        try:
            containers = self.collector.list_containers()
        except CycleError as e:
            logger.error(f"Failed to get container list, treating as empty: {e}")
            self._record(observation, e)
            return

        observation.containers_listed = len(containers)
        for container in containers:
            try:
                labels = label_keys.container_labels(container, self.schema)
            except LabelContractError as e:
                # Nothing identifies the container, so there is nothing to carry forward
                logger.error(f"Skipping container with invalid descriptor: {e}")
                self._record(observation, e)
                continue

            try:
                state = self.collector.inspect(container.id) if self.track_info else None
                usage = self.collector.sample_usage(container.id)
            except EntityError as e:
                logger.warning(
                    f"Skipping container {label_keys.container_name(container)} "
                    f"({container.id[:12]}) this cycle: {e}"
                )
                self._record(observation, e)
                observation.snapshot.carry_forward(self._previous, CONTAINER_KINDS, container.id)
                continue

            self._observe_container(observation, container, labels, usage, state)
            observation.containers_scraped += 1

    def _observe_container(
        self,
        observation: Observation,
        container: ContainerDescriptor,
        labels: LabelSet,
        usage: UsageSnapshot,
        state: Optional[ContainerState],
    ):
        snapshot = observation.snapshot

        snapshot.add(KIND_CONTAINER, container.id, labels)
        observation.write(metrics.PIDS, labels, usage.pids)
        observation.write(metrics.CPU_USAGE_USER, labels, usage.cpu_user_seconds)
        observation.write(metrics.CPU_USAGE_KERNEL, labels, usage.cpu_kernel_seconds)
        observation.write(metrics.CPU_USAGE_TOTAL, labels, usage.cpu_total_seconds)
        observation.write(metrics.MEMORY_USAGE, labels, usage.memory_working_set_bytes)
        observation.write(metrics.MEMORY_LIMIT, labels, usage.memory_limit)

        for interface, net in usage.networks.items():
            net_labels = label_keys.network_labels(container, interface, self.schema)
            snapshot.add(KIND_NETWORK, (container.id, interface), net_labels)
            observation.write(metrics.NETWORK_RECEIVE_BYTES, net_labels, net.rx_bytes)
            observation.write(metrics.NETWORK_TRANSMIT_BYTES, net_labels, net.tx_bytes)
            observation.write(metrics.NETWORK_RECEIVE_PACKETS, net_labels, net.rx_packets)
            observation.write(metrics.NETWORK_TRANSMIT_PACKETS, net_labels, net.tx_packets)
            observation.write(metrics.NETWORK_RECEIVE_ERRORS, net_labels, net.rx_errors)
            observation.write(metrics.NETWORK_TRANSMIT_ERRORS, net_labels, net.tx_errors)
            observation.write(metrics.NETWORK_RECEIVE_DROPPED, net_labels, net.rx_dropped)
            observation.write(metrics.NETWORK_TRANSMIT_DROPPED, net_labels, net.tx_dropped)

        if state is not None:
            info = label_keys.info_labels(container, state)
            snapshot.add(KIND_INFO, (container.id, label_keys.info_key(info)), info)
            observation.write(metrics.CONTAINER_INFO, info, 1)

    def _observe_filesystems(self, observation: Observation):
        try:
            paths = filesystem.mount_points(self.base_path)
        except CycleError as e:
            logger.error(f"Failed to list mounts under {self.base_path}, treating as empty: {e}")
            self._record(observation, e)
            return

        for path in paths:
            try:
                fs = filesystem.sample(path)
            except EntityError as e:
                logger.warning(f"Skipping filesystem {path} this cycle: {e}")
                self._record(observation, e)
                observation.snapshot.carry_forward(self._previous, (KIND_FILESYSTEM,), path)
                continue

            labels = label_keys.filesystem_labels(path, self.base_path)
            observation.snapshot.add(KIND_FILESYSTEM, path, labels)
            observation.write(metrics.DATA_FREE, labels, fs.free_bytes)
            observation.write(metrics.DATA_AVAILABLE, labels, fs.available_bytes)
            observation.write(metrics.DATA_SIZE, labels, fs.size_bytes)
            observation.write(metrics.DATA_INODES_FREE, labels, fs.inodes_free)
            observation.write(metrics.DATA_INODES, labels, fs.inodes)
            observation.mounts_sampled += 1

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, observation: Observation) -> int:
        """
        Write an observation to the registry and prune vanished label sets.

        Returns:
            Number of label sets removed
        """
        removed = 0
        current = observation.snapshot
        with self.registry.transaction():
            for series, labels, value in observation.writes:
                self.registry.set(series, labels, value)

            for kind in KINDS:
                live = {_frozen(labels) for labels in current.get(kind).values()}
                for key, labels in self._previous.get(kind).items():
                    # Compared by label set, so a renamed or recreated container
                    # drops its old series without touching a live one
                    if _frozen(labels) in live:
                        continue
                    logger.debug(f"Removing {kind} series for {key}")
                    self.registry.remove_all(kind, labels)
                    removed += 1

            self._previous = current
        return removed

    def run_cycle(self) -> Observation:
        """Run one observe/apply cycle."""
        start_time = time.monotonic()
        observation = self.observe()
        removed = self.apply(observation)
        duration = time.monotonic() - start_time

        self.registry.cycle_duration_seconds.set(duration)
        self.registry.containers_scraped.set(observation.containers_scraped)
        self.cycle_count += 1
        self.last_cycle_at = time.time()

        logger.info(
            f"Cycle {self.cycle_count}: scraped {observation.containers_scraped}/"
            f"{observation.containers_listed} containers, {observation.mounts_sampled} mounts, "
            f"removed {removed} stale label sets, {observation.errors} errors "
            f"in {duration:.2f}s"
        )
        return observation

    def run_forever(self, stop_event: threading.Event):
        """Run cycles until stop_event is set, at most one per interval."""
        logger.info(f"Collection loop started (interval {self.interval}s)")

        while not stop_event.is_set():
            start_time = time.monotonic()
            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"Error in collection loop: {e}", exc_info=True)
                self.registry.record_error('collection_loop')

            duration = time.monotonic() - start_time
            stop_event.wait(max(0.0, self.interval - duration))

        logger.info("Collection loop stopped")
