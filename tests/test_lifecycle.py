"""Tests for VM lifecycle actions, VM creation and VMID allocation."""

import pytest

from conftest import CSRF
from proximox.errors import (
    APIError,
    NoNodesAvailable,
    VMCreationFailed,
    VMIDFallbackWarning,
    VMNotFound,
)
from proximox.models import VMSpec


def _inventory(transport):
    transport.add('GET', '/nodes', [
        {'node': 'A', 'status': 'offline'},
        {'node': 'B', 'status': 'online'},
        {'node': 'C', 'status': 'online'},
    ])
    transport.add('GET', '/nodes/A/qemu', raw='unreachable', status=595)
    transport.add('GET', '/nodes/B/qemu', [{'vmid': 100}, {'vmid': 101}])
    transport.add('GET', '/nodes/C/qemu', [{'vmid': 103}])


def _mutations(transport):
    return [call for call in transport.calls_to('POST') if call['path'] != '/access/ticket']


class TestLifecycleActions:
    def test_unknown_vm_is_not_found_and_nothing_is_posted(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'A', 'status': 'online'}])
        transport.add('GET', '/nodes/A/qemu', [{'vmid': 100}])

        with pytest.raises(VMNotFound) as excinfo:
            client.start_vm('vm-101')

        assert excinfo.value.vm_id == 'vm-101'
        assert _mutations(transport) == []

    def test_start_posts_to_owning_node(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/C/qemu/103/status/start', 'UPID:C:start')

        client.start_vm('vm-103')

        [call] = _mutations(transport)
        assert call['path'] == '/nodes/C/qemu/103/status/start'
        assert call['body'] == ''
        assert call['headers']['CSRFPreventionToken'] == CSRF

    def test_scan_stops_at_first_owner(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/B/qemu/101/status/stop', None)

        client.stop_vm('vm-101')

        assert transport.calls_to('GET', '/nodes/C/qemu') == []

    def test_restart_issues_reboot(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/B/qemu/100/status/reboot', 'UPID:B:reboot')

        client.restart_vm('vm-100')

        [call] = _mutations(transport)
        assert call['path'] == '/nodes/B/qemu/100/status/reboot'

    def test_bare_numeric_id_is_accepted(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/B/qemu/100/status/start', None)

        client.start_vm('100')

        assert len(_mutations(transport)) == 1

    def test_non_numeric_id_is_not_found(self, client, transport):
        with pytest.raises(VMNotFound):
            client.start_vm('vm-web')
        assert transport.calls == []

    def test_action_failure_propagates(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/B/qemu/100/status/start', raw='VM is locked', status=500)

        with pytest.raises(APIError) as excinfo:
            client.start_vm('vm-100')
        assert excinfo.value.body == 'VM is locked'


class TestCreateVM:
    def test_single_post_with_sanitized_payload(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/B/qemu', 'UPID:B:qmcreate:102')
        spec = VMSpec(name='Test VM!', os='ubuntu-22.04', cpu=2, memory=4096, disk=50)

        result = client.create_vm(spec)

        [call] = _mutations(transport)
        assert call['path'] == '/nodes/B/qemu'
        form = transport.form(call)
        assert form['name'] == 'test-vm'
        assert form['cores'] == '2'
        assert form['memory'] == '4096'
        assert form['scsi0'] == 'local-lvm:50'
        assert form['vmid'] == '102'
        assert form['ostype'] == 'l26'
        assert form['net0'] == 'virtio,bridge=vmbr0'
        assert form['boot'] == 'order=scsi0;ide2;net0'
        assert 'description' not in form

        assert result.vm_id == '102'
        assert result.task == 'UPID:B:qmcreate:102'
        assert result.node == 'B'
        assert result.vmid_fallback is False

    def test_falls_back_to_first_node_when_none_online(self, client, transport):
        transport.add('GET', '/nodes', [{'node': 'X', 'status': 'offline'}])
        transport.add('GET', '/nodes/X/qemu', [])
        transport.add('POST', '/nodes/X/qemu', None)
        spec = VMSpec(name='db', os='windows-server-2022', cpu=4, memory=8192, disk=100,
                      description='primary database')

        result = client.create_vm(spec)

        form = transport.form(_mutations(transport)[0])
        assert form['ostype'] == 'win11'
        assert form['description'] == 'primary database'
        assert result.vm_id == '100'
        assert result.task == 'VM creation task initiated'

    def test_rejected_creation(self, client, transport):
        _inventory(transport)
        transport.add('POST', '/nodes/B/qemu', raw='storage full', status=500)

        with pytest.raises(VMCreationFailed) as excinfo:
            client.create_vm(VMSpec(name='x', os='debian-12', cpu=1, memory=512, disk=8))

        assert excinfo.value.status == 500
        assert excinfo.value.body == 'storage full'

    def test_empty_cluster(self, client, transport):
        transport.add('GET', '/nodes', [])

        with pytest.raises(NoNodesAvailable):
            client.create_vm(VMSpec(name='x', os='debian-12', cpu=1, memory=512, disk=8))


class TestNextVMID:
    def test_smallest_free_id_from_100(self, client, transport):
        _inventory(transport)
        assert client.next_vmid() == 102

    def test_empty_cluster_starts_at_100(self, client, transport):
        transport.add('GET', '/nodes', [])
        assert client.next_vmid() == 100

    def test_never_returns_a_used_id(self, client, transport):
        used = list(range(100, 130)) + [131]
        transport.add('GET', '/nodes', [{'node': 'A'}])
        transport.add('GET', '/nodes/A/qemu', [{'vmid': vmid} for vmid in used])

        vmid = client.next_vmid()

        assert vmid == 130
        assert vmid not in used

    def test_random_fallback_is_flagged(self, client, transport):
        transport.add('GET', '/nodes', raw='down', status=500)

        with pytest.warns(VMIDFallbackWarning):
            vmid = client.next_vmid()

        assert 100 <= vmid <= 999

    def test_fallback_is_reported_on_creation(self, client, transport):
        responses = iter([
            (200, '{"data": [{"node": "A", "status": "online"}]}'),
            (500, 'flaky'),
        ])
        transport.add('GET', '/nodes', handler=lambda body: next(responses))
        transport.add('POST', '/nodes/A/qemu', 'UPID:A:qmcreate')

        with pytest.warns(VMIDFallbackWarning):
            result = client.create_vm(VMSpec(name='x', os='debian-12', cpu=1, memory=512, disk=8))

        assert result.vmid_fallback is True
        assert 100 <= int(result.vm_id) <= 999
