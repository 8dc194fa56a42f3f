"""Tests for cluster aggregation and primary node statistics."""

import pytest

from conftest import node_status
from proximox.errors import (
    APIError,
    InvalidResponseFormat,
    NoNodesAvailable,
    RequestCancelled,
    RequestTimeout,
)

GIB = 1024 ** 3


def _two_node_cluster(transport):
    transport.add('GET', '/nodes', [
        {'node': 'A', 'status': 'online', 'type': 'node'},
        {'node': 'B', 'status': 'online', 'type': 'node'},
    ])
    transport.add('GET', '/nodes/A/status', node_status(cpu=0.25, cpus=8, used=4 * GIB, total=16 * GIB))
    transport.add('GET', '/nodes/A/qemu', [
        {'vmid': 100, 'status': 'running'},
        {'vmid': 101, 'status': 'stopped'},
    ])


class TestClusterStatus:
    def test_timed_out_node_is_reported_offline(self, client, transport):
        _two_node_cluster(transport)
        transport.add('GET', '/nodes/B/status', error=RequestTimeout('Request timeout'))
        transport.add('GET', '/nodes/B/qemu', [{'vmid': 200, 'status': 'running'}])

        view = client.get_cluster_status()

        assert [node.name for node in view.nodes] == ['A', 'B']
        a, b = view.nodes
        assert a.status == 'online'
        assert a.cpu == pytest.approx(25.0)
        assert a.memory == pytest.approx(25.0)
        assert a.uptime == 3600
        assert a.version == 'pve-manager/8.1.3/b46aac3b42da5d15'

        assert b.status == 'offline'
        assert (b.cpu, b.memory, b.uptime, b.version) == (0.0, 0.0, 0, 'Unknown')

    def test_totals_only_count_reachable_nodes(self, client, transport):
        _two_node_cluster(transport)
        transport.add('GET', '/nodes/B/status', raw='fail', status=500)

        view = client.get_cluster_status()

        assert view.total_vms == 2
        assert view.running_vms == 1
        assert view.cpu.total == 8
        assert view.cpu.used == pytest.approx(0.25)
        assert view.memory.total == 16
        assert view.memory.used == 4
        assert (view.storage.used, view.storage.total) == (0, 0)

    def test_inventory_failure_also_marks_node_offline(self, client, transport):
        _two_node_cluster(transport)
        transport.add('GET', '/nodes/B/status', node_status())
        transport.add('GET', '/nodes/B/qemu', raw='nope', status=500)

        view = client.get_cluster_status()

        assert len(view.nodes) == 2
        assert view.nodes[1].status == 'offline'
        assert view.total_vms == 2

    def test_every_node_failing_still_yields_one_record_each(self, client, transport):
        transport.add('GET', '/nodes', [{'node': name, 'status': 'online'} for name in 'ABCDE'])

        view = client.get_cluster_status()

        assert [node.name for node in view.nodes] == list('ABCDE')
        assert all(node.status == 'offline' for node in view.nodes)
        assert view.total_vms == 0

    def test_zero_total_memory_does_not_divide(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'A', 'status': 'online'}])
        transport.add('GET', '/nodes/A/status', {'cpu': 0.5, 'memory': {'used': 0, 'total': 0}})
        transport.add('GET', '/nodes/A/qemu', [])

        node = client.get_cluster_status().nodes[0]

        assert node.memory == 0.0
        assert node.cpu == pytest.approx(50.0)

    def test_node_type_and_offline_listing(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'backup', 'status': 'offline', 'type': 'pbs'}])
        transport.add('GET', '/nodes/backup/status', node_status())
        transport.add('GET', '/nodes/backup/qemu', [])

        node = client.get_cluster_status().nodes[0]

        assert node.type == 'pbs'
        assert node.status == 'offline'

    @pytest.mark.parametrize("payload", [
        {'cpu': 0.1, 'cpuinfo': 'n/a'},
        {'cpu': 0.1, 'memory': [1, 2]},
        {'cpu': 0.1, 'loadavg': '0.1 0.2 0.3'},
    ])
    def test_badly_shaped_status_marks_only_that_node_offline(self, client, transport, payload):
        _two_node_cluster(transport)
        transport.add('GET', '/nodes/B/status', payload)
        transport.add('GET', '/nodes/B/qemu', [])

        view = client.get_cluster_status()

        assert [node.status for node in view.nodes] == ['online', 'offline']
        assert view.cpu.total == 8

    def test_node_list_failure_propagates(self, client, transport):
        transport.add('GET', '/nodes', raw='denied', status=401)

        with pytest.raises(APIError):
            client.get_cluster_status()

    def test_cancellation_is_not_swallowed(self, client, transport):
        _two_node_cluster(transport)
        transport.add('GET', '/nodes/B/status', error=RequestCancelled('cancelled'))

        with pytest.raises(RequestCancelled):
            client.get_cluster_status()

    def test_to_dict_uses_dashboard_keys(self, client, transport):
        _two_node_cluster(transport)
        transport.add('GET', '/nodes/B/status', error=RequestTimeout('Request timeout'))

        data = client.get_cluster_status().to_dict()

        assert data['totalVMs'] == 2
        assert data['runningVMs'] == 1
        assert set(data['resources']) == {'cpu', 'memory', 'storage'}
        assert data['nodes'][1]['status'] == 'offline'


class TestServerStats:
    def test_primary_node_stats(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'A', 'status': 'online'}, {'node': 'B'}])
        transport.add('GET', '/nodes/A/status', node_status(cpu=0.1, cpus=4, used=2 * GIB, total=8 * GIB))
        transport.add('GET', '/nodes/A/storage', [
            {'storage': 'nfs', 'type': 'nfs', 'used': 1, 'total': 2},
            {'storage': 'local', 'type': 'dir', 'used': 25, 'total': 100},
        ])
        transport.add('GET', '/nodes/A/network', [
            {'iface': 'lo', 'type': 'loopback'},
            {'iface': 'vmbr0', 'type': 'bridge', 'netIn': 10, 'netOut': 20},
        ])

        stats = client.get_server_stats()

        assert stats.cpu_usage == pytest.approx(10.0)
        assert stats.cpu_cores == 4
        assert stats.cpu_model == 'AMD EPYC 7302'
        assert stats.memory_usage == pytest.approx(25.0)
        assert (stats.disk_used, stats.disk_total) == (25, 100)
        assert stats.disk_usage == pytest.approx(25.0)
        assert (stats.bytes_in, stats.bytes_out) == (10, 20)
        assert stats.load_average == [0.1, 0.2, 0.3]
        assert transport.calls_to('GET', '/nodes/B/status') == []

    def test_storage_and_network_failures_are_tolerated(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'A', 'status': 'online'}])
        transport.add('GET', '/nodes/A/status', node_status())
        transport.add('GET', '/nodes/A/storage', raw='err', status=500)
        transport.add('GET', '/nodes/A/network', raw='err', status=500)

        stats = client.get_server_stats()

        assert (stats.disk_used, stats.disk_total, stats.disk_usage) == (0, 0, 0.0)
        assert (stats.bytes_in, stats.bytes_out) == (0, 0)

    def test_empty_cluster(self, client, transport):
        transport.add('GET', '/nodes', [])

        with pytest.raises(NoNodesAvailable):
            client.get_server_stats()

    def test_badly_shaped_primary_status_is_invalid_response(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'A', 'status': 'online'}])
        transport.add('GET', '/nodes/A/status', {'cpu': 0.1, 'cpuinfo': 'n/a'})

        with pytest.raises(InvalidResponseFormat) as excinfo:
            client.get_server_stats()
        assert excinfo.value.status_code == 502
