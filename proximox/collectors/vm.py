"""Virtual machine inventory collector."""

from typing import List, Optional, Tuple
import logging

from .base import BaseCollector
from proximox.errors import ProximoxError
from proximox.models import VirtualMachine
from proximox.schemas import NodeEntry, QemuEntry, VMConfig
from proximox.utils import bytes_to_mb, format_vm_id, os_label

logger = logging.getLogger(__name__)

VM_STATUSES = ('running', 'stopped', 'paused')


def vm_status(entry: QemuEntry) -> str:
    """Dashboard lifecycle status for an inventory entry."""
    if entry.status == 'running' and entry.qmpstatus == 'paused':
        return 'paused'
    return entry.status if entry.status in VM_STATUSES else 'error'


def build_virtual_machine(node: str, entry: QemuEntry, config: VMConfig) -> VirtualMachine:
    """Merge an inventory entry with its (possibly empty) configuration."""
    status = vm_status(entry)
    running = status == 'running'

    cpu: Optional[float] = 0.0
    if running:
        # None marks a running VM whose usage the hypervisor did not report
        cpu = entry.cpu * 100 if entry.cpu is not None else None

    return VirtualMachine(
        id=format_vm_id(entry.vmid),
        name=entry.name or f'VM-{entry.vmid}',
        status=status,
        cpu=cpu,
        memory=config.memory or bytes_to_mb(entry.maxmem),
        disk=config.disk_gb,
        uptime=entry.uptime if running else 0,
        os=os_label(config.ostype),
        node=node,
    )


class VirtualMachineCollector(BaseCollector):
    """Lists every VM of every node with its configuration merged in."""

    def _fetch_inventory(self, entry: NodeEntry) -> List[QemuEntry]:
        return self.api.get_node_vms(entry.node)

    def _fetch_config(self, item: Tuple[str, QemuEntry]) -> VMConfig:
        node, vm = item
        return self.api.get_vm_config(node, vm.vmid)

    def collect(self) -> List[VirtualMachine]:
        """Collect all VMs of the cluster.

        Nodes whose inventory cannot be read contribute nothing. A VM whose
        configuration cannot be read is still reported, with defaults.

        Returns:
            One VirtualMachine per inventory entry, grouped by node in node order
        """
        nodes = self.api.get_nodes()

        inventory: List[Tuple[str, QemuEntry]] = []
        for entry, outcome in self.gather(self._fetch_inventory, nodes):
            if isinstance(outcome, ProximoxError):
                logger.error(f"✗ Failed to get VMs for node {entry.node}: {outcome}")
                continue
            inventory.extend((entry.node, vm) for vm in outcome)

        vms = []
        for (node, vm), outcome in self.gather(self._fetch_config, inventory):
            if isinstance(outcome, ProximoxError):
                logger.warning(f"Could not get config for VM {vm.vmid}: {outcome}")
                outcome = VMConfig()
            vms.append(build_virtual_machine(node, vm, outcome))

        logger.info(f"✓ Found {len(vms)} VM(s) on {len(nodes)} node(s)")
        return vms
