"""Utility functions for the hypervisor client."""

import re
from typing import Any, Dict, Optional

from .errors import VMNotFound

VM_ID_PREFIX = 'vm-'

DISK_KEY_PATTERN = re.compile(r'^(scsi|virtio|ide|sata)\d+$')
DISK_SIZE_PATTERN = re.compile(r'size=(\d+)G')

# Hypervisor ostype code -> label shown on the dashboard
OS_LABELS = {
    'l26': 'Linux',
    'l24': 'Linux 2.4',
    'win10': 'Windows 10',
    'win8': 'Windows 8',
    'win7': 'Windows 7',
    'wvista': 'Windows Vista',
    'wxp': 'Windows XP',
    'w2k8': 'Windows Server 2008',
    'w2k3': 'Windows Server 2003',
    'w2k': 'Windows 2000',
    'other': 'Other',
}

# Dashboard OS choice -> hypervisor ostype code
OS_TYPE_CODES = {
    'ubuntu-22.04': 'l26',
    'ubuntu-20.04': 'l26',
    'centos-9': 'l26',
    'centos-8': 'l26',
    'debian-12': 'l26',
    'debian-11': 'l26',
    'windows-server-2022': 'win11',
    'windows-server-2019': 'win10',
}

BYTES_PER_MB = 1024 * 1024
BYTES_PER_GIB = 1024 * 1024 * 1024


def bytes_to_gib(bytes_value: Optional[int]) -> int:
    """Round a byte count to whole GiB."""
    if not bytes_value:
        return 0
    return round(bytes_value / BYTES_PER_GIB)


def bytes_to_mb(bytes_value: Optional[int]) -> int:
    if not bytes_value:
        return 0
    return round(bytes_value / BYTES_PER_MB)


def disk_size_gb(config: Dict[str, Any]) -> int:
    """Size of the first bus-attached disk in a VM config.

    Only the first key matching scsi/virtio/ide/sata plus an index is
    inspected; a missing key or a size not expressed in G gives 0.
    """
    for key, value in config.items():
        if not DISK_KEY_PATTERN.match(key):
            continue
        if not isinstance(value, str):
            return 0
        match = DISK_SIZE_PATTERN.search(value)
        return int(match.group(1)) if match else 0
    return 0


def sanitize_vm_name(name: str) -> str:
    """Turn a display name into a DNS-label-safe VM name.

    Args:
        name: Original name, e.g. "Web Server_01!"

    Returns:
        Sanitized name, e.g. "web-server-01"
    """
    safe_name = name.lower()
    safe_name = re.sub(r'[^a-z0-9-]', '-', safe_name)
    safe_name = re.sub(r'-{2,}', '-', safe_name)
    safe_name = safe_name.strip('-')
    # truncation can expose a trailing hyphen
    return safe_name[:15].rstrip('-')


def parse_vm_id(vm_id: Any) -> int:
    """Strip the display prefix from a dashboard VM id.

    Raises:
        VMNotFound: the remainder is not a numeric VMID
    """
    text = str(vm_id).strip()
    numeric = text[len(VM_ID_PREFIX):] if text.startswith(VM_ID_PREFIX) else text
    if not numeric.isdigit():
        raise VMNotFound(text)
    return int(numeric)


def format_vm_id(vmid: int) -> str:
    return f"{VM_ID_PREFIX}{vmid}"


def os_label(ostype: Optional[str]) -> str:
    """Human readable label for a hypervisor ostype code."""
    if not ostype:
        return 'unknown'
    return OS_LABELS.get(ostype, ostype)


def os_type_code(os_name: Optional[str]) -> str:
    """Hypervisor ostype code for a dashboard OS choice."""
    return OS_TYPE_CODES.get(os_name or '', 'other')


def usage_percent(used: Optional[float], total: Optional[float]) -> float:
    if not total:
        return 0.0
    return (used or 0) / total * 100
