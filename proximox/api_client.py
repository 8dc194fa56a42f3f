"""Hypervisor API client: session handling and request layer."""

import json
import logging
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from .errors import (
    APIError,
    AuthenticationFailed,
    InvalidResponseFormat,
    MalformedAuthResponse,
    RequestCancelled,
)
from .models import ServerConfig, Session
from .schemas import (
    AuthTicket,
    NetworkInterface,
    NodeEntry,
    NodeStatus,
    QemuEntry,
    StorageEntry,
    VersionInfo,
    VMConfig,
)
from .transport import Transport

logger = logging.getLogger(__name__)

AUTH_ENDPOINT = '/access/ticket'
MUTATING_METHODS = ('POST', 'PUT', 'DELETE')
FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'


def _parse_json(raw_body: str, what: str) -> Any:
    try:
        return json.loads(raw_body)
    except ValueError:
        raise InvalidResponseFormat(f"Invalid JSON response from {what}: {raw_body}", raw_body)


class SessionManager:
    """Obtains and caches the ticket used by every request of one client.

    First-time authentication is single-flight: concurrent callers wait on
    one lock and reuse the ticket the first caller obtained.
    """

    def __init__(self, server: ServerConfig, transport: Transport):
        self.server = server
        self.transport = transport
        self._session: Optional[Session] = None
        self._lock = threading.Lock()

        if server.api_token:
            logger.info("Using API Token authentication")
        else:
            logger.info("Using username/password authentication")

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def ensure_authenticated(self) -> Optional[Session]:
        """Return the cached session, logging in first if needed.

        Returns:
            The ticket session, or None when an API token is configured

        Raises:
            AuthenticationFailed: missing credentials or non-200 from the ticket endpoint
            MalformedAuthResponse: the ticket endpoint answered without a ticket
        """
        if self.server.api_token:
            return None

        session = self._session
        if session is not None:
            return session

        with self._lock:
            if self._session is None:
                self._session = self._login()
            return self._session

    def invalidate(self) -> None:
        """Drop the cached ticket so the next request logs in again."""
        with self._lock:
            self._session = None

    def _login(self) -> Session:
        if not self.server.username or not self.server.password:
            raise AuthenticationFailed("Username and password required for authentication")

        body = urlencode({
            'username': self.server.username,
            'password': self.server.password,
        })
        status, raw_body = self.transport.send(
            f"{self.server.base_url}{AUTH_ENDPOINT}",
            method='POST',
            headers={'Content-Type': FORM_CONTENT_TYPE},
            body=body,
        )

        if status != 200:
            logger.error(f"✗ Authentication failed: {status}")
            raise AuthenticationFailed(f"Authentication failed: {status} - {raw_body}", status, raw_body)

        try:
            envelope = json.loads(raw_body)
        except ValueError:
            raise MalformedAuthResponse("Invalid authentication response - body is not JSON", {'body': raw_body})

        data = envelope.get('data') if isinstance(envelope, dict) else None
        ticket = AuthTicket.from_api(data)
        if ticket is None:
            raise MalformedAuthResponse("Invalid authentication response - no ticket received", {'body': raw_body})

        logger.info("✓ Authentication successful")
        return Session(ticket=ticket.ticket, csrf_token=ticket.csrf_token)

    def auth_headers(self, method: str, session: Optional[Session]) -> Dict[str, str]:
        """Credential headers for one request."""
        if self.server.api_token:
            return {'Authorization': f'PVEAPIToken={self.server.api_token}'}
        if session is None:
            return {}
        headers = {'Cookie': f'PVEAuthCookie={session.ticket}'}
        if method in MUTATING_METHODS:
            headers['CSRFPreventionToken'] = session.csrf_token
        return headers


class ProximoxAPIClient:
    """Client for the hypervisor REST API."""

    def __init__(self, server: ServerConfig, transport: Optional[Transport] = None,
                 sessions: Optional[SessionManager] = None,
                 cancel_event: Optional[threading.Event] = None):
        """Initialize the API client.

        Args:
            server: Connection settings
            transport: Transport to send requests through; built from the
                settings when omitted
            sessions: Session manager to share with another client
            cancel_event: Cancellation token checked before every request
        """
        self.server = server
        self.base_url = server.base_url
        self.transport = transport or Transport(
            verify_ssl=server.verify_ssl,
            timeout=server.timeout,
            pool_size=server.max_workers,
        )
        self.sessions = sessions or SessionManager(server, self.transport)
        self._cancelled = cancel_event or threading.Event()

    def with_cancel_event(self, cancel_event: threading.Event) -> 'ProximoxAPIClient':
        """A client sharing this one's transport and session under its own token."""
        return ProximoxAPIClient(
            self.server,
            self.transport,
            sessions=self.sessions,
            cancel_event=cancel_event,
        )

    def cancel(self) -> None:
        """Make every request issued from now on fail with RequestCancelled."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def call(self, endpoint: str, method: str = 'GET', data: Optional[Dict[str, Any]] = None) -> Any:
        """Make an authenticated request and unwrap the data envelope.

        Args:
            endpoint: API endpoint path (e.g., '/nodes')
            method: HTTP verb
            data: Form fields; an empty dict sends an empty form body

        Returns:
            The envelope's ``data`` value, or the whole body when there is no envelope

        Raises:
            RequestCancelled: cancel() was called
            APIError: status other than 200
            InvalidResponseFormat: body is not JSON
        """
        if self._cancelled.is_set():
            raise RequestCancelled(f"Request to {endpoint} cancelled")

        session = None
        if endpoint != AUTH_ENDPOINT:
            session = self.sessions.ensure_authenticated()

        headers = self.sessions.auth_headers(method, session)
        body = None
        if data is not None:
            headers['Content-Type'] = FORM_CONTENT_TYPE
            body = urlencode(data)

        logger.debug(f"Making request to: {endpoint} with method: {method}")
        status, raw_body = self.transport.send(
            f"{self.base_url}{endpoint}",
            method=method,
            headers=headers,
            body=body,
        )

        if status != 200:
            logger.error(f"✗ API request failed for {endpoint}: {status}")
            raise APIError(status, raw_body, endpoint)

        parsed = _parse_json(raw_body, endpoint)
        if isinstance(parsed, dict) and 'data' in parsed:
            return parsed['data']
        return parsed

    def _get_list(self, endpoint: str) -> List[Dict[str, Any]]:
        data = self.call(endpoint)
        if data is None:
            return []
        if not isinstance(data, list):
            raise InvalidResponseFormat(f"Expected a list from {endpoint}", json.dumps(data))
        return [item for item in data if isinstance(item, dict)]

    def _get_object(self, endpoint: str) -> Dict[str, Any]:
        data = self.call(endpoint)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise InvalidResponseFormat(f"Expected an object from {endpoint}", json.dumps(data))
        return data

    def get_version(self) -> VersionInfo:
        """Get hypervisor version information."""
        return VersionInfo.from_api(self._get_object('/version'))

    def get_nodes(self) -> List[NodeEntry]:
        """Get list of all nodes in the cluster."""
        return [NodeEntry.from_api(item) for item in self._get_list('/nodes')]

    def get_node_status(self, node: str) -> NodeStatus:
        """Get node status information.

        Args:
            node: Node name
        """
        return NodeStatus.from_api(self._get_object(f'/nodes/{node}/status'))

    def get_node_vms(self, node: str) -> List[QemuEntry]:
        """Get the QEMU VM inventory of a node.

        Args:
            node: Node name
        """
        return [QemuEntry.from_api(item) for item in self._get_list(f'/nodes/{node}/qemu')]

    def get_vm_config(self, node: str, vmid: int) -> VMConfig:
        """Get VM configuration.

        Args:
            node: Node name
            vmid: VM ID
        """
        return VMConfig.from_api(self._get_object(f'/nodes/{node}/qemu/{vmid}/config'))

    def get_node_storage(self, node: str) -> List[StorageEntry]:
        """Get storage information for a node.

        Args:
            node: Node name
        """
        return [StorageEntry.from_api(item) for item in self._get_list(f'/nodes/{node}/storage')]

    def get_node_network(self, node: str) -> List[NetworkInterface]:
        """Get network configuration for a node.

        Args:
            node: Node name
        """
        return [NetworkInterface.from_api(item) for item in self._get_list(f'/nodes/{node}/network')]

    def vm_status_action(self, node: str, vmid: int, action: str) -> Any:
        """POST a start/stop/reboot action for a VM.

        Returns:
            Task identifier (UPID) reported by the hypervisor
        """
        return self.call(f'/nodes/{node}/qemu/{vmid}/status/{action}', method='POST', data={})

    def create_qemu_vm(self, node: str, payload: Dict[str, Any]) -> Any:
        """POST a VM creation request to a node.

        Returns:
            Task identifier (UPID) reported by the hypervisor
        """
        return self.call(f'/nodes/{node}/qemu', method='POST', data=payload)
