"""Cluster overview and node statistics collectors."""

from typing import List, Tuple
import logging

from .base import BaseCollector
from proximox.errors import NoNodesAvailable, ProximoxError, RequestCancelled
from proximox.models import ClusterView, Node, ServerStats
from proximox.schemas import NodeEntry, NodeStatus, QemuEntry
from proximox.utils import bytes_to_gib, usage_percent

logger = logging.getLogger(__name__)


class ClusterStatusCollector(BaseCollector):
    """Aggregates per-node status and VM counts into a ClusterView."""

    def _fetch_node(self, entry: NodeEntry) -> Tuple[NodeStatus, List[QemuEntry]]:
        status = self.api.get_node_status(entry.node)
        vms = self.api.get_node_vms(entry.node)
        return status, vms

    def collect(self) -> ClusterView:
        """Collect the cluster view.

        A node whose status or VM list cannot be fetched is reported offline
        with zeroed metrics; only the node list itself is fatal.

        Returns:
            ClusterView with one Node per entry of /nodes, in the same order
        """
        entries = self.api.get_nodes()
        view = ClusterView()

        for entry, outcome in self.gather(self._fetch_node, entries):
            node_type = 'pbs' if entry.type == 'pbs' else 'pve'

            if isinstance(outcome, ProximoxError):
                logger.error(f"✗ Failed to get status for node {entry.node}: {outcome}")
                view.nodes.append(Node.offline(entry.node, node_type))
                continue

            status, vms = outcome

            view.total_vms += len(vms)
            view.running_vms += sum(1 for vm in vms if vm.status == 'running')

            view.cpu.total += status.cpus or 1
            view.cpu.used += status.cpu
            view.memory.total += bytes_to_gib(status.memory_total)
            view.memory.used += bytes_to_gib(status.memory_used)

            view.nodes.append(Node(
                id=entry.node,
                name=entry.node,
                status='online' if entry.online else 'offline',
                type=node_type,
                cpu=status.cpu_percent,
                memory=status.memory_percent,
                uptime=status.uptime,
                version=status.version,
            ))

        # Storage totals are not collected per node yet and stay at zero
        logger.info(
            f"✓ Cluster status: {len(view.nodes)} node(s), "
            f"{view.running_vms}/{view.total_vms} VM(s) running"
        )
        return view


class ServerStatsCollector(BaseCollector):
    """Detailed statistics for the first node of the cluster."""

    def collect(self) -> ServerStats:
        entries = self.api.get_nodes()
        if not entries:
            raise NoNodesAvailable("No nodes available")

        node = entries[0].node
        status = self.api.get_node_status(node)

        stats = ServerStats(
            cpu_usage=status.cpu_percent,
            cpu_cores=status.cpus or 1,
            cpu_model=status.cpu_model,
            memory_used=status.memory_used,
            memory_total=status.memory_total,
            memory_usage=status.memory_percent,
            uptime=status.uptime,
            load_average=status.load_average,
        )

        try:
            storage = self.api.get_node_storage(node)
            local = next((pool for pool in storage if pool.is_local), None)
            if local is not None:
                stats.disk_total = local.total
                stats.disk_used = local.used
        except RequestCancelled:
            raise
        except ProximoxError as e:
            logger.warning(f"Failed to get storage info for node {node}: {e}")
        stats.disk_usage = usage_percent(stats.disk_used, stats.disk_total)

        try:
            interfaces = self.api.get_node_network(node)
            primary = next((iface for iface in interfaces if iface.iface and not iface.is_loopback), None)
            if primary is not None:
                stats.bytes_in = primary.bytes_in
                stats.bytes_out = primary.bytes_out
        except RequestCancelled:
            raise
        except ProximoxError as e:
            logger.warning(f"Failed to get network info for node {node}: {e}")

        return stats
