"""VM lifecycle actions and VMID allocation."""

import logging
import random
import warnings
from typing import Optional, Set, Tuple

from .api_client import ProximoxAPIClient
from .errors import (
    APIError,
    NoNodesAvailable,
    ProximoxError,
    RequestCancelled,
    VMCreationFailed,
    VMIDFallbackWarning,
    VMNotFound,
)
from .models import VMCreation, VMSpec
from .utils import os_type_code, parse_vm_id, sanitize_vm_name

logger = logging.getLogger(__name__)

FIRST_VMID = 100
FALLBACK_VMID_RANGE = (100, 999)

# Action accepted by the dashboard -> hypervisor status endpoint
LIFECYCLE_ACTIONS = {
    'start': 'start',
    'stop': 'stop',
    'restart': 'reboot',
}


class VMIDAllocator:
    """Finds the next free VMID by scanning every node's inventory."""

    def __init__(self, api_client: ProximoxAPIClient):
        self.api = api_client

    def used_vmids(self) -> Set[int]:
        """Collect the VMIDs in use on all reachable nodes."""
        used = set()
        for node in self.api.get_nodes():
            try:
                vms = self.api.get_node_vms(node.node)
            except RequestCancelled:
                raise
            except ProximoxError as e:
                logger.warning(f"Could not get VMs from node {node.node}: {e}")
                continue
            used.update(vm.vmid for vm in vms if vm.vmid)
        return used

    def allocate(self) -> Tuple[int, bool]:
        """Return the next VMID and whether the random fallback was used.

        The fallback only happens when the node list itself cannot be read.
        A random VMID may collide with one in use, so callers are warned
        through VMIDFallbackWarning.
        """
        try:
            used = self.used_vmids()
        except RequestCancelled:
            raise
        except ProximoxError as e:
            vmid = random.randint(*FALLBACK_VMID_RANGE)
            logger.warning(f"✗ VMID scan failed ({e}), using random VMID {vmid}")
            warnings.warn(
                f"VMID {vmid} was chosen at random and may already be in use",
                VMIDFallbackWarning,
                stacklevel=3,
            )
            return vmid, True

        vmid = FIRST_VMID
        while vmid in used:
            vmid += 1
        return vmid, False


class VMLifecycleController:
    """Starts, stops, restarts and creates VMs."""

    def __init__(self, api_client: ProximoxAPIClient, allocator: Optional[VMIDAllocator] = None):
        self.api = api_client
        self.allocator = allocator or VMIDAllocator(api_client)

    def find_node(self, vmid: int) -> Optional[str]:
        """Name of the first node whose inventory lists ``vmid``."""
        for node in self.api.get_nodes():
            try:
                vms = self.api.get_node_vms(node.node)
            except RequestCancelled:
                raise
            except ProximoxError as e:
                logger.debug(f"Skipping node {node.node} while locating VM {vmid}: {e}")
                continue
            if any(vm.vmid == vmid for vm in vms):
                return node.node
        return None

    def perform(self, vm_id: str, action: str) -> None:
        """Run a lifecycle action against the node that owns the VM.

        Args:
            vm_id: Dashboard VM id, e.g. "vm-101"
            action: start, stop or restart

        Raises:
            ValueError: unknown action
            VMNotFound: no node owns the VM
        """
        if action not in LIFECYCLE_ACTIONS:
            raise ValueError(f"Invalid action '{action}'. Use start, stop, or restart")

        vmid = parse_vm_id(vm_id)
        node = self.find_node(vmid)
        if node is None:
            raise VMNotFound(vm_id)

        logger.info(f"Attempting to {action} VM {vm_id} (ID: {vmid}) on node: {node}")
        self.api.vm_status_action(node, vmid, LIFECYCLE_ACTIONS[action])
        logger.info(f"✓ {action.capitalize()} issued for VM {vm_id}")

    def start(self, vm_id: str) -> None:
        self.perform(vm_id, 'start')

    def stop(self, vm_id: str) -> None:
        self.perform(vm_id, 'stop')

    def restart(self, vm_id: str) -> None:
        self.perform(vm_id, 'restart')

    def build_payload(self, vmid: int, spec: VMSpec) -> dict:
        """Form fields for the VM creation request."""
        server = self.api.server
        payload = {
            'vmid': vmid,
            'name': sanitize_vm_name(spec.name),
            'ostype': os_type_code(spec.os),
            'cores': spec.cpu,
            'memory': spec.memory,
            'scsi0': f'{server.default_storage}:{spec.disk}',
            'scsihw': 'virtio-scsi-pci',
            'net0': f'virtio,bridge={server.default_bridge}',
            'ide2': 'none,media=cdrom',
            'boot': 'order=scsi0;ide2;net0',
            'agent': 1,
            'cpu': 'host',
            'kvm': 1,
        }
        if spec.description:
            payload['description'] = spec.description
        return payload

    def create(self, spec: VMSpec) -> VMCreation:
        """Create a VM on the first online node.

        The spec is expected to have been validated by the caller.

        Raises:
            NoNodesAvailable: the cluster has no nodes
            VMCreationFailed: the hypervisor rejected the request
        """
        nodes = self.api.get_nodes()
        if not nodes:
            raise NoNodesAvailable()

        target = next((node for node in nodes if node.online), nodes[0]).node
        vmid, fallback = self.allocator.allocate()
        payload = self.build_payload(vmid, spec)

        logger.info(f"Creating VM {payload['name']} (ID: {vmid}) on node: {target}")
        try:
            task = self.api.create_qemu_vm(target, payload)
        except APIError as e:
            raise VMCreationFailed(e.status, e.body) from e

        logger.info(f"✓ VM {vmid} creation task started")
        return VMCreation(
            vm_id=str(vmid),
            task=task or 'VM creation task initiated',
            node=target,
            vmid_fallback=fallback,
        )
