"""Data models for the ProximoX dashboard."""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from .errors import InvalidSpec


@dataclass(frozen=True)
class ServerConfig:
    """Connection settings for one hypervisor. Immutable once a client owns it."""
    host: str
    port: int = 8006
    protocol: str = 'https'
    api_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    verify_ssl: bool = False
    timeout: float = 15.0  # in seconds
    max_workers: int = 8
    default_storage: str = 'local-lvm'
    default_bridge: str = 'vmbr0'

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}/api2/json"

    @property
    def auth_method(self) -> str:
        return "token" if self.api_token else "password"


@dataclass
class Session:
    """Ticket credentials issued by /access/ticket."""
    ticket: str
    csrf_token: str


@dataclass
class Node:
    """Represents a cluster node as shown on the dashboard."""
    id: str
    name: str
    status: str  # online | offline | maintenance
    type: str = 'pve'  # pve | pbs
    cpu: float = 0.0  # percent
    memory: float = 0.0  # percent
    uptime: int = 0  # in seconds
    version: str = 'Unknown'

    @classmethod
    def offline(cls, name: str, node_type: str = 'pve') -> 'Node':
        return cls(id=name, name=name, status='offline', type=node_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'type': self.type,
            'cpu': self.cpu,
            'memory': self.memory,
            'uptime': self.uptime,
            'version': self.version,
        }


@dataclass
class VirtualMachine:
    """Represents a QEMU VM as shown on the dashboard."""
    id: str
    name: str
    status: str  # running | stopped | paused | error
    cpu: Optional[float] = 0.0  # percent, None when the hypervisor reports nothing
    memory: int = 0  # in MB
    disk: int = 0  # in GB
    uptime: int = 0  # in seconds
    os: str = 'unknown'
    ip: Optional[str] = None
    node: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'cpu': self.cpu,
            'memory': self.memory,
            'disk': self.disk,
            'uptime': self.uptime,
            'os': self.os,
            'node': self.node,
        }
        if self.ip:
            data['ip'] = self.ip
        return data


@dataclass
class ResourceUsage:
    used: float = 0
    total: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'used': self.used, 'total': self.total}


@dataclass
class ClusterView:
    """Cluster-wide summary, rebuilt on every aggregation."""
    nodes: List[Node] = field(default_factory=list)
    total_vms: int = 0
    running_vms: int = 0
    cpu: ResourceUsage = field(default_factory=ResourceUsage)  # cores
    memory: ResourceUsage = field(default_factory=ResourceUsage)  # in GiB
    storage: ResourceUsage = field(default_factory=ResourceUsage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [node.to_dict() for node in self.nodes],
            'totalVMs': self.total_vms,
            'runningVMs': self.running_vms,
            'resources': {
                'cpu': self.cpu.to_dict(),
                'memory': self.memory.to_dict(),
                'storage': self.storage.to_dict(),
            },
        }


@dataclass
class ServerStats:
    """Detailed statistics for the primary node."""
    cpu_usage: float = 0.0
    cpu_cores: int = 1
    cpu_model: str = 'Unknown CPU'
    memory_used: int = 0  # in bytes
    memory_total: int = 0  # in bytes
    memory_usage: float = 0.0
    disk_used: int = 0  # in bytes
    disk_total: int = 0  # in bytes
    disk_usage: float = 0.0
    bytes_in: int = 0
    bytes_out: int = 0
    uptime: int = 0  # in seconds
    load_average: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cpu': {'usage': self.cpu_usage, 'cores': self.cpu_cores, 'model': self.cpu_model},
            'memory': {'used': self.memory_used, 'total': self.memory_total, 'usage': self.memory_usage},
            'disk': {'used': self.disk_used, 'total': self.disk_total, 'usage': self.disk_usage},
            'network': {
                'bytesIn': self.bytes_in,
                'bytesOut': self.bytes_out,
                # packet counters are not exposed by the node network endpoint
                'packetsIn': 0,
                'packetsOut': 0,
            },
            'uptime': self.uptime,
            'loadAverage': self.load_average,
        }


@dataclass
class VMSpec:
    """Request to create a VM."""
    name: Optional[str] = None
    os: Optional[str] = None
    cpu: Optional[int] = None
    memory: Optional[int] = None  # in MB
    disk: Optional[int] = None  # in GB
    description: str = ''

    REQUIRED = ('name', 'os', 'cpu', 'memory', 'disk')

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'VMSpec':
        return cls(
            name=payload.get('name'),
            os=payload.get('os'),
            cpu=payload.get('cpu'),
            memory=payload.get('memory'),
            disk=payload.get('disk'),
            description=payload.get('description') or '',
        )

    def validate(self) -> None:
        """Raise InvalidSpec listing every missing or empty required field."""
        missing = [name for name in self.REQUIRED if not getattr(self, name)]
        if missing:
            raise InvalidSpec(missing)


@dataclass
class VMCreation:
    """Result of a create request."""
    vm_id: str
    task: str
    node: str
    vmid_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vmId': self.vm_id,
            'task': self.task,
            'node': self.node,
            'vmidFallback': self.vmid_fallback,
        }


@dataclass
class ConnectionReport:
    """Outcome of a connectivity test."""
    server: str
    protocol: str
    auth_method: str
    authenticated: bool
    version: Any = 'Unknown'
    username: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'server': self.server,
            'protocol': self.protocol,
            'authMethod': self.auth_method,
            'authenticated': self.authenticated,
            'version': self.version,
            'username': self.username,
            'message': 'Hypervisor connection successful',
        }
