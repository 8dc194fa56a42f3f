"""Typed records for hypervisor API payloads.

Each record is built with ``from_api`` from the unwrapped ``data`` value of
one endpoint. Optional fields default so that a partial answer never fails
the whole record.
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .errors import InvalidResponseFormat
from .utils import disk_size_gb


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == '':
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if value is None or value == '':
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _nested(data: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if not value:
        return default
    if not isinstance(value, kind):
        raise InvalidResponseFormat(
            f"Expected {kind.__name__} for '{key}', got {type(value).__name__}",
            json.dumps(data, default=str),
        )
    return value


@dataclass
class AuthTicket:
    """POST /access/ticket"""
    ticket: str
    csrf_token: str
    username: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Optional['AuthTicket']:
        if not isinstance(data, dict):
            return None
        ticket = data.get('ticket')
        csrf_token = data.get('CSRFPreventionToken')
        if not ticket or not csrf_token:
            return None
        return cls(ticket=ticket, csrf_token=csrf_token, username=data.get('username'))


@dataclass
class NodeEntry:
    """One element of GET /nodes"""
    node: str
    status: str = 'unknown'
    type: str = 'node'

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'NodeEntry':
        return cls(
            node=str(data.get('node', '')),
            status=data.get('status') or 'unknown',
            type=data.get('type') or 'node',
        )

    @property
    def online(self) -> bool:
        return self.status == 'online'


@dataclass
class NodeStatus:
    """GET /nodes/{node}/status"""
    cpu: float = 0.0  # fraction 0-1
    cpus: Optional[int] = None
    cpu_model: str = 'Unknown CPU'
    memory_used: int = 0  # in bytes
    memory_total: int = 0  # in bytes
    uptime: int = 0  # in seconds
    version: str = 'Unknown'
    load_average: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'NodeStatus':
        """Build the record from a node status payload.

        Raises:
            InvalidResponseFormat: cpuinfo or memory is not an object, or
                loadavg is not a list
        """
        cpuinfo = _nested(data, 'cpuinfo', dict, {})
        memory = _nested(data, 'memory', dict, {})
        loadavg = _nested(data, 'loadavg', list, [0, 0, 0])

        # pveversion is a string like "pve-manager/8.1.3/b46aac3b42da5d15"
        version = data.get('pveversion') or data.get('version') or 'Unknown'
        if isinstance(version, dict):
            version = version.get('version') or 'Unknown'

        return cls(
            cpu=_as_float(data.get('cpu')),
            cpus=_as_int(cpuinfo.get('cpus'), default=0) or None,
            cpu_model=cpuinfo.get('model') or 'Unknown CPU',
            memory_used=_as_int(memory.get('used')),
            memory_total=_as_int(memory.get('total')),
            uptime=_as_int(data.get('uptime')),
            version=str(version),
            load_average=[_as_float(value) for value in loadavg],
        )

    @property
    def cpu_percent(self) -> float:
        return self.cpu * 100

    @property
    def memory_percent(self) -> float:
        if not self.memory_total:
            return 0.0
        return self.memory_used / self.memory_total * 100


@dataclass
class QemuEntry:
    """One element of GET /nodes/{node}/qemu"""
    vmid: int
    name: Optional[str] = None
    status: str = 'unknown'
    qmpstatus: Optional[str] = None
    cpu: Optional[float] = None  # fraction 0-1, absent when not reported
    maxmem: int = 0  # in bytes
    uptime: int = 0  # in seconds

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'QemuEntry':
        return cls(
            vmid=_as_int(data.get('vmid')),
            name=data.get('name'),
            status=data.get('status') or 'unknown',
            qmpstatus=data.get('qmpstatus'),
            cpu=_as_float(data.get('cpu'), default=None),
            maxmem=_as_int(data.get('maxmem')),
            uptime=_as_int(data.get('uptime')),
        )


@dataclass
class VMConfig:
    """GET /nodes/{node}/qemu/{vmid}/config

    The config is a flat key/value map whose disk and network keys are
    indexed (scsi0, net0, ...), so the raw mapping is kept alongside the
    handful of typed fields the dashboard reads.
    """
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'VMConfig':
        return cls(raw=dict(data or {}))

    @property
    def memory(self) -> Optional[int]:
        value = _as_int(self.raw.get('memory'))
        return value or None

    @property
    def ostype(self) -> Optional[str]:
        return self.raw.get('ostype')

    @property
    def disk_gb(self) -> int:
        return disk_size_gb(self.raw)


@dataclass
class StorageEntry:
    """One element of GET /nodes/{node}/storage"""
    storage: str
    type: str = ''
    used: int = 0  # in bytes
    total: int = 0  # in bytes
    active: bool = True

    LOCAL_TYPES: ClassVar[Tuple[str, ...]] = ('dir', 'lvm', 'zfs')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'StorageEntry':
        return cls(
            storage=str(data.get('storage', '')),
            type=data.get('type') or '',
            used=_as_int(data.get('used')),
            total=_as_int(data.get('total')),
            active=bool(data.get('active', 1)),
        )

    @property
    def is_local(self) -> bool:
        return self.type in self.LOCAL_TYPES


@dataclass
class NetworkInterface:
    """One element of GET /nodes/{node}/network"""
    iface: str
    type: str = ''
    bytes_in: int = 0
    bytes_out: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'NetworkInterface':
        return cls(
            iface=str(data.get('iface', '')),
            type=data.get('type') or '',
            bytes_in=_as_int(data.get('netIn') or data.get('bytesIn')),
            bytes_out=_as_int(data.get('netOut') or data.get('bytesOut')),
        )

    @property
    def is_loopback(self) -> bool:
        return self.iface.startswith('lo')


@dataclass
class VersionInfo:
    """GET /version"""
    version: str = 'Unknown'
    release: Optional[str] = None
    repoid: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'VersionInfo':
        return cls(
            version=str(data.get('version') or 'Unknown'),
            release=data.get('release'),
            repoid=data.get('repoid'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'version': self.version, 'release': self.release, 'repoid': self.repoid}
