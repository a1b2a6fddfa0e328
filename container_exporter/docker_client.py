"""
Docker API Client for collecting container statistics.

This module wraps the Docker SDK to list running containers, take one-shot
resource usage snapshots and inspect container state. Every call is bounded
by the client timeout, and failures are raised as typed exporter errors so
the collection loop can decide whether to skip one container or the whole
listing.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from container_exporter.errors import (
    ClientInitError,
    ContainerListError,
    InspectError,
    StatsFetchError,
)
from container_exporter.labels import ContainerDescriptor, ContainerState

logger = logging.getLogger(__name__)

NANOSECONDS_PER_SECOND = 1e9

# Errors the SDK and its HTTP transport raise for a failed call
API_ERRORS = (DockerException, RequestException, ValueError)


@dataclass(frozen=True)
class NetworkCounters:
    """Per-interface counters from a stats sample."""
    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_packets: int = 0
    tx_packets: int = 0
    rx_errors: int = 0
    tx_errors: int = 0
    rx_dropped: int = 0
    tx_dropped: int = 0


@dataclass(frozen=True)
class UsageSnapshot:
    """Point-in-time resource usage of one container."""
    pids: int = 0
    cpu_user_ns: int = 0
    cpu_kernel_ns: int = 0
    cpu_total_ns: int = 0
    memory_usage: int = 0
    memory_limit: int = 0
    memory_cache: int = 0
    networks: Dict[str, NetworkCounters] = field(default_factory=dict)

    @property
    def cpu_user_seconds(self) -> float:
        return self.cpu_user_ns / NANOSECONDS_PER_SECOND

    @property
    def cpu_kernel_seconds(self) -> float:
        return self.cpu_kernel_ns / NANOSECONDS_PER_SECOND

    @property
    def cpu_total_seconds(self) -> float:
        return self.cpu_total_ns / NANOSECONDS_PER_SECOND

    @property
    def memory_working_set_bytes(self) -> int:
        """Memory usage excluding the page cache."""
        if self.memory_usage >= self.memory_cache:
            return self.memory_usage - self.memory_cache
        return self.memory_usage


def _parse_cpu_stats(stats: Dict[str, Any]) -> Dict[str, int]:
    cpu_usage = (stats.get('cpu_stats') or {}).get('cpu_usage') or {}
    return {
        'cpu_user_ns': int(cpu_usage.get('usage_in_usermode', 0)),
        'cpu_kernel_ns': int(cpu_usage.get('usage_in_kernelmode', 0)),
        'cpu_total_ns': int(cpu_usage.get('total_usage', 0)),
    }


def _parse_memory_stats(stats: Dict[str, Any]) -> Dict[str, int]:
    memory_stats = stats.get('memory_stats') or {}
    # cgroup v2 hosts report no 'cache' entry; treat it as zero
    cache = (memory_stats.get('stats') or {}).get('cache', 0)
    return {
        'memory_usage': int(memory_stats.get('usage', 0)),
        'memory_limit': int(memory_stats.get('limit', 0)),
        'memory_cache': int(cache),
    }


def _parse_network_stats(stats: Dict[str, Any]) -> Dict[str, NetworkCounters]:
    networks = stats.get('networks') or {}
    return {
        interface: NetworkCounters(
            rx_bytes=int(net.get('rx_bytes', 0)),
            tx_bytes=int(net.get('tx_bytes', 0)),
            rx_packets=int(net.get('rx_packets', 0)),
            tx_packets=int(net.get('tx_packets', 0)),
            rx_errors=int(net.get('rx_errors', 0)),
            tx_errors=int(net.get('tx_errors', 0)),
            rx_dropped=int(net.get('rx_dropped', 0)),
            tx_dropped=int(net.get('tx_dropped', 0)),
        )
        for interface, net in networks.items()
    }


def parse_stats(stats: Dict[str, Any]) -> UsageSnapshot:
    """
    Parse a raw stats payload from the Docker API.

    Args:
        stats: Decoded JSON body of GET /containers/{id}/stats

    Returns:
        UsageSnapshot

    Raises:
        TypeError, ValueError, AttributeError: if the payload is malformed
    """
    return UsageSnapshot(
        pids=int((stats.get('pids_stats') or {}).get('current', 0)),
        networks=_parse_network_stats(stats),
        **_parse_cpu_stats(stats),
        **_parse_memory_stats(stats),
    )


class DockerStatsCollector:
    """Collects statistics from Docker containers using the Docker API."""

    def __init__(self, socket_path: Optional[str] = None, timeout: float = 10):
        """
        Initialize the Docker client.

        Args:
            socket_path: Optional Docker daemon URL. If None, uses the environment.
            timeout: Per-call timeout in seconds.

        Raises:
            ClientInitError: if the daemon cannot be reached
        """
        self.timeout = timeout
        try:
            if socket_path:
                self.client = docker.DockerClient(base_url=socket_path, timeout=timeout)
            else:
                self.client = docker.from_env(timeout=timeout)

            # Test connection
            self.client.ping()
            logger.info("Successfully connected to Docker daemon")
        except API_ERRORS as e:
            logger.error(f"Failed to connect to Docker daemon: {e}")
            raise ClientInitError(str(e), operation='connect', target=socket_path or 'env') from e

    def list_containers(self) -> List[ContainerDescriptor]:
        """
        List running containers.

        Returns:
            List of ContainerDescriptor

        Raises:
            ContainerListError: if the list call fails
        """
        try:
            containers = self.client.containers.list(sparse=True)
        except API_ERRORS as e:
            raise ContainerListError(str(e), operation='list_containers') from e

        descriptors = [ContainerDescriptor.from_api(c.attrs) for c in containers]
        logger.debug(f"Found {len(descriptors)} containers")
        return descriptors

    def sample_usage(self, container_id: str) -> UsageSnapshot:
        """
        Take a one-shot resource usage sample.

        Args:
            container_id: Docker container ID

        Raises:
            StatsFetchError: if the call fails or the payload cannot be parsed
        """
        try:
            stats = self.client.api.stats(container_id, stream=False, one_shot=True)
        except API_ERRORS as e:
            raise StatsFetchError(str(e), operation='stats', target=container_id) from e

        try:
            return parse_stats(stats)
        except (TypeError, ValueError, AttributeError) as e:
            raise StatsFetchError(
                f"Malformed stats payload: {e}", operation='parse_stats', target=container_id
            ) from e

    def inspect(self, container_id: str) -> ContainerState:
        """
        Inspect full container state.

        Raises:
            InspectError: if the call fails
        """
        try:
            attrs = self.client.api.inspect_container(container_id)
        except API_ERRORS as e:
            raise InspectError(str(e), operation='inspect', target=container_id) from e
        return ContainerState.from_api(attrs)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except API_ERRORS as e:
            logger.debug(f"Docker ping failed: {e}")
            return False

    def close(self):
        """Close the Docker client connection."""
        try:
            self.client.close()
            logger.info("Docker client connection closed")
        except API_ERRORS as e:
            logger.error(f"Error closing Docker client: {e}")
