"""
Tests for container_exporter/docker_client.py
"""
import pytest
from unittest.mock import MagicMock, patch

from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import ReadTimeout

from container_exporter.docker_client import DockerStatsCollector, UsageSnapshot, parse_stats
from container_exporter.errors import (
    ClientInitError,
    ContainerListError,
    InspectError,
    StatsFetchError,
)
from tests.helpers import make_stats


@pytest.fixture
def mock_docker():
    """Patch docker.from_env and return the mock client"""
    with patch('container_exporter.docker_client.docker.from_env') as mock_from_env:
        client = MagicMock()
        mock_from_env.return_value = client
        yield mock_from_env, client


class TestParseStats:
    """Test parsing raw stats payloads"""

    def test_cpu_converted_to_seconds(self):
        snapshot = parse_stats(make_stats(total_ns=2_500_000_000, user_ns=2_000_000_000,
                                          kernel_ns=500_000_000))
        assert snapshot.cpu_total_seconds == 2.5
        assert snapshot.cpu_user_seconds == 2.0
        assert snapshot.cpu_kernel_seconds == 0.5

    def test_memory_working_set_excludes_cache(self):
        snapshot = parse_stats(make_stats(usage=100_000_000, cache=20_000_000))
        assert snapshot.memory_working_set_bytes == 80_000_000

    def test_missing_cache_counts_as_zero(self):
        snapshot = parse_stats(make_stats(usage=100_000_000, cache=None))
        assert snapshot.memory_cache == 0
        assert snapshot.memory_working_set_bytes == 100_000_000

    def test_cache_larger_than_usage_falls_back_to_usage(self):
        snapshot = UsageSnapshot(memory_usage=10, memory_cache=20)
        assert snapshot.memory_working_set_bytes == 10

    def test_pids_and_limit(self):
        snapshot = parse_stats(make_stats(pids=12, limit=2048))
        assert snapshot.pids == 12
        assert snapshot.memory_limit == 2048

    def test_networks_per_interface(self):
        stats = make_stats(networks={
            'eth0': {'rx_bytes': 1, 'tx_bytes': 2, 'rx_packets': 3, 'tx_packets': 4,
                     'rx_errors': 5, 'tx_errors': 6, 'rx_dropped': 7, 'tx_dropped': 8},
            'eth1': {'rx_bytes': 10},
        })
        snapshot = parse_stats(stats)

        assert set(snapshot.networks) == {'eth0', 'eth1'}
        eth0 = snapshot.networks['eth0']
        assert (eth0.rx_bytes, eth0.tx_bytes, eth0.rx_packets, eth0.tx_packets) == (1, 2, 3, 4)
        assert (eth0.rx_errors, eth0.tx_errors, eth0.rx_dropped, eth0.tx_dropped) == (5, 6, 7, 8)
        assert snapshot.networks['eth1'].tx_bytes == 0

    def test_host_network_has_no_interfaces(self):
        stats = make_stats()
        del stats['networks']
        assert parse_stats(stats).networks == {}

    def test_empty_payload(self):
        snapshot = parse_stats({})
        assert snapshot == UsageSnapshot()


class TestDockerStatsCollector:
    """Test the Docker SDK wrapper"""

    def test_init_uses_timeout(self, mock_docker):
        mock_from_env, client = mock_docker
        collector = DockerStatsCollector(timeout=3)

        mock_from_env.assert_called_once_with(timeout=3)
        client.ping.assert_called_once()
        assert collector.timeout == 3

    @patch('container_exporter.docker_client.docker.DockerClient')
    def test_init_with_socket_path(self, mock_client_cls):
        DockerStatsCollector(socket_path='unix:///var/run/docker.sock', timeout=5)
        mock_client_cls.assert_called_once_with(base_url='unix:///var/run/docker.sock', timeout=5)

    def test_init_failure_is_fatal(self, mock_docker):
        mock_from_env, _ = mock_docker
        mock_from_env.side_effect = DockerException("socket not found")

        with pytest.raises(ClientInitError):
            DockerStatsCollector()

    def test_list_containers(self, mock_docker):
        _, client = mock_docker
        container = MagicMock()
        container.attrs = {
            'Id': 'abc123',
            'Names': ['/web-1'],
            'Image': 'nginx',
            'ImageID': 'sha256:ff',
            'Labels': {'com.docker.compose.project': 'shop'},
            'State': 'running',
        }
        client.containers.list.return_value = [container]

        descriptors = DockerStatsCollector().list_containers()

        client.containers.list.assert_called_once_with(sparse=True)
        assert len(descriptors) == 1
        assert descriptors[0].id == 'abc123'
        assert descriptors[0].labels == {'com.docker.compose.project': 'shop'}

    def test_list_failure_raises_cycle_error(self, mock_docker):
        _, client = mock_docker
        client.containers.list.side_effect = APIError("500 Server Error")

        with pytest.raises(ContainerListError):
            DockerStatsCollector().list_containers()

    def test_list_timeout_raises_cycle_error(self, mock_docker):
        _, client = mock_docker
        client.containers.list.side_effect = ReadTimeout("read timed out")

        with pytest.raises(ContainerListError):
            DockerStatsCollector().list_containers()

    def test_sample_usage(self, mock_docker):
        _, client = mock_docker
        client.api.stats.return_value = make_stats(pids=9)

        snapshot = DockerStatsCollector().sample_usage('abc123')

        client.api.stats.assert_called_once_with('abc123', stream=False, one_shot=True)
        assert snapshot.pids == 9

    def test_sample_usage_not_found(self, mock_docker):
        _, client = mock_docker
        client.api.stats.side_effect = NotFound("No such container")

        with pytest.raises(StatsFetchError) as exc_info:
            DockerStatsCollector().sample_usage('gone')
        assert exc_info.value.target == 'gone'
        assert exc_info.value.operation == 'stats'

    def test_sample_usage_malformed_payload(self, mock_docker):
        _, client = mock_docker
        client.api.stats.return_value = {'pids_stats': {'current': 'many'}}

        with pytest.raises(StatsFetchError):
            DockerStatsCollector().sample_usage('abc123')

    def test_inspect(self, mock_docker):
        _, client = mock_docker
        client.api.inspect_container.return_value = {'State': {'Running': True, 'OOMKilled': True}}

        state = DockerStatsCollector().inspect('abc123')

        assert state.running is True
        assert state.oom_killed is True
        assert state.paused is False

    def test_inspect_failure(self, mock_docker):
        _, client = mock_docker
        client.api.inspect_container.side_effect = ReadTimeout("read timed out")

        with pytest.raises(InspectError):
            DockerStatsCollector().inspect('abc123')

    def test_ping(self, mock_docker):
        _, client = mock_docker
        collector = DockerStatsCollector()

        client.ping.side_effect = DockerException("gone")
        assert collector.ping() is False

    def test_close(self, mock_docker):
        _, client = mock_docker
        DockerStatsCollector().close()
        client.close.assert_called_once()
