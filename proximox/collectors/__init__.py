"""Collectors that aggregate hypervisor data across cluster nodes."""

from .base import BaseCollector
from .cluster import ClusterStatusCollector, ServerStatsCollector
from .vm import VirtualMachineCollector, build_virtual_machine

__all__ = [
    'BaseCollector',
    'ClusterStatusCollector',
    'ServerStatsCollector',
    'VirtualMachineCollector',
    'build_virtual_machine',
]
