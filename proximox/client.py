"""ProximoX client: one method per dashboard operation."""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Set

from .api_client import ProximoxAPIClient
from .collectors import ClusterStatusCollector, ServerStatsCollector, VirtualMachineCollector
from .errors import ProximoxError, RequestCancelled
from .lifecycle import VMIDAllocator, VMLifecycleController
from .models import (
    ClusterView,
    ConnectionReport,
    ServerConfig,
    ServerStats,
    VMCreation,
    VMSpec,
    VirtualMachine,
)
from .transport import Transport

logger = logging.getLogger(__name__)


class ProximoxClient:
    """Client for monitoring and controlling a hypervisor cluster.

    One instance owns one ServerConfig, one transport and one session,
    shared by every operation. Each operation runs under its own
    cancellation token: pass ``cancel_event`` to cancel a single operation,
    or call ``cancel()`` to abort every operation currently in flight.
    """

    def __init__(self, server: ServerConfig, transport: Optional[Transport] = None):
        self.server = server
        self.api = ProximoxAPIClient(server, transport)
        self._active: Set[threading.Event] = set()
        self._active_lock = threading.Lock()

    @contextmanager
    def operation(self, cancel_event: Optional[threading.Event] = None) -> Iterator[ProximoxAPIClient]:
        """Scope one operation under its own cancellation token."""
        event = cancel_event if cancel_event is not None else threading.Event()
        with self._active_lock:
            self._active.add(event)
        try:
            yield self.api.with_cancel_event(event)
        finally:
            with self._active_lock:
                self._active.discard(event)

    def cancel(self) -> None:
        """Abort the operations in flight; later operations are unaffected."""
        with self._active_lock:
            events = list(self._active)
        for event in events:
            event.set()
        if events:
            logger.info(f"Cancelled {len(events)} operation(s) in flight")

    def get_cluster_status(self, cancel_event: Optional[threading.Event] = None) -> ClusterView:
        with self.operation(cancel_event) as api:
            return ClusterStatusCollector(api).collect()

    def get_server_stats(self, cancel_event: Optional[threading.Event] = None) -> ServerStats:
        with self.operation(cancel_event) as api:
            return ServerStatsCollector(api).collect()

    def get_virtual_machines(self, cancel_event: Optional[threading.Event] = None) -> List[VirtualMachine]:
        with self.operation(cancel_event) as api:
            return VirtualMachineCollector(api).collect()

    def vm_action(self, vm_id: str, action: str, cancel_event: Optional[threading.Event] = None) -> None:
        """Run start, stop or restart against the node that owns ``vm_id``."""
        with self.operation(cancel_event) as api:
            VMLifecycleController(api).perform(vm_id, action)

    def start_vm(self, vm_id: str, cancel_event: Optional[threading.Event] = None) -> None:
        self.vm_action(vm_id, 'start', cancel_event)

    def stop_vm(self, vm_id: str, cancel_event: Optional[threading.Event] = None) -> None:
        self.vm_action(vm_id, 'stop', cancel_event)

    def restart_vm(self, vm_id: str, cancel_event: Optional[threading.Event] = None) -> None:
        self.vm_action(vm_id, 'restart', cancel_event)

    def create_vm(self, spec: VMSpec, cancel_event: Optional[threading.Event] = None) -> VMCreation:
        with self.operation(cancel_event) as api:
            return VMLifecycleController(api).create(spec)

    def next_vmid(self, cancel_event: Optional[threading.Event] = None) -> int:
        """Next free VMID; emits VMIDFallbackWarning when it had to guess."""
        with self.operation(cancel_event) as api:
            vmid, _ = VMIDAllocator(api).allocate()
        return vmid

    def test_connection(self, cancel_event: Optional[threading.Event] = None) -> ConnectionReport:
        """Authenticate and read the hypervisor version.

        Authentication and connection failures propagate; a failing version
        call after a successful login is reported as an unknown version.
        """
        server = self.server
        logger.info(f"Testing hypervisor connection to: {server.protocol}://{server.host}:{server.port}")

        with self.operation(cancel_event) as api:
            api.sessions.ensure_authenticated()

            version = 'Unknown'
            try:
                version = api.get_version().to_dict()
                logger.info(f"✓ Hypervisor version check successful: {version['version']}")
            except RequestCancelled:
                raise
            except ProximoxError as e:
                logger.warning(f"Version check failed: {e}")

        username = server.username.split('@')[0] if server.username else None
        return ConnectionReport(
            server=f"{server.host}:{server.port}",
            protocol=server.protocol,
            auth_method=server.auth_method,
            authenticated=True,
            version=version,
            username=username,
        )

    def close(self) -> None:
        self.api.transport.close()
