"""
Shared builders for container exporter tests
"""
from typing import Dict, List, Optional

from container_exporter.docker_client import parse_stats
from container_exporter.errors import ContainerListError, InspectError, StatsFetchError
from container_exporter.labels import ContainerDescriptor, ContainerState


def make_stats(
    pids: int = 3,
    user_ns: int = 1_000_000_000,
    kernel_ns: int = 500_000_000,
    total_ns: int = 1_500_000_000,
    usage: int = 100_000_000,
    limit: int = 1_000_000_000,
    cache: Optional[int] = 20_000_000,
    networks: Optional[Dict[str, Dict[str, int]]] = None,
) -> dict:
    """Build a raw Docker stats payload."""
    memory_stats = {'usage': usage, 'limit': limit, 'stats': {}}
    if cache is not None:
        memory_stats['stats']['cache'] = cache
    if networks is None:
        networks = {
            'eth0': {
                'rx_bytes': 1000, 'tx_bytes': 2000,
                'rx_packets': 10, 'tx_packets': 20,
                'rx_errors': 1, 'tx_errors': 2,
                'rx_dropped': 3, 'tx_dropped': 4,
            }
        }
    return {
        'pids_stats': {'current': pids},
        'cpu_stats': {
            'cpu_usage': {
                'total_usage': total_ns,
                'usage_in_usermode': user_ns,
                'usage_in_kernelmode': kernel_ns,
            },
        },
        'memory_stats': memory_stats,
        'networks': networks,
    }


def make_container(
    container_id: str,
    name: str,
    project: Optional[str] = 'shop',
    service: Optional[str] = 'web',
    image: str = 'nginx:1.25',
    image_id: str = 'sha256:abcd1234',
    state: str = 'running',
) -> ContainerDescriptor:
    labels = {}
    if project is not None:
        labels['com.docker.compose.project'] = project
    if service is not None:
        labels['com.docker.compose.service'] = service
    return ContainerDescriptor(
        id=container_id,
        names=[f'/{name}'],
        labels=labels,
        image=image,
        image_id=image_id,
        state=state,
    )


class FakeCollector:
    """In-memory stand-in for DockerStatsCollector, scripted per cycle."""

    def __init__(self):
        self.containers: List[ContainerDescriptor] = []
        self.stats: Dict[str, dict] = {}
        self.states: Dict[str, ContainerState] = {}
        self.fail_list = False
        self.fail_stats = set()
        self.fail_inspect = set()
        self.closed = False
        self.healthy = True

    def add(self, container: ContainerDescriptor, stats: Optional[dict] = None,
            state: Optional[ContainerState] = None):
        self.containers.append(container)
        self.stats[container.id] = stats if stats is not None else make_stats()
        self.states[container.id] = state or ContainerState(running=True)

    def drop(self, container_id: str):
        self.containers = [c for c in self.containers if c.id != container_id]

    def list_containers(self):
        if self.fail_list:
            raise ContainerListError("daemon unavailable", operation='list_containers')
        return list(self.containers)

    def sample_usage(self, container_id):
        if container_id in self.fail_stats:
            raise StatsFetchError("timed out", operation='stats', target=container_id)
        return parse_stats(self.stats[container_id])

    def inspect(self, container_id):
        if container_id in self.fail_inspect:
            raise InspectError("no such container", operation='inspect', target=container_id)
        return self.states[container_id]

    def ping(self):
        return self.healthy

    def close(self):
        self.closed = True
