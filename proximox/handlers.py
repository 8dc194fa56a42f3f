"""Request handlers for the dashboard API.

Each handler calls one client method and returns ``(status_code, body)``.
An optional ``cancel_event`` cancels that one request.
Failures are rendered as ``{"error": {"kind", "message", "detail"}}``
with the status code declared by the error class.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .client import ProximoxClient
from .errors import HypervisorConnectionError, ProximoxError
from .lifecycle import LIFECYCLE_ACTIONS
from .models import VMSpec

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, Any]]

CONNECTION_HINTS = {
    'timeout': 'Connection timeout - server did not respond in time',
    'certificate': 'SSL certificate error - this is common with self-signed certificates',
    'refused': 'Connection refused - check if the hypervisor is running and port is correct',
    'dns': 'Host not found - check the IP address or hostname',
    'unreachable': 'Host unreachable - check network connectivity and that the server is online',
}


def troubleshooting(client: ProximoxClient) -> List[str]:
    server = client.server
    address = f"{server.host}:{server.port}"
    return [
        'Verify the hypervisor server is running',
        f'Check IP address and port number: {address}',
        f'Ensure firewall allows connections to port {server.port}',
        f'Test from command line: curl -v {server.protocol}://{address}/api2/json/version',
        'Try using HTTPS if server requires it' if server.protocol == 'http'
        else 'Try using HTTP if HTTPS has issues',
    ]


def error_response(error: ProximoxError, client: Optional[ProximoxClient] = None) -> Response:
    body = {'error': error.to_dict()}
    if isinstance(error, HypervisorConnectionError):
        body['error']['hint'] = CONNECTION_HINTS.get(error.reason, error.message)
        if client is not None:
            body['troubleshooting'] = troubleshooting(client)
    return error.status_code, body


def bad_request(message: str) -> Response:
    return 400, {'error': {'kind': 'ValidationError', 'message': message, 'detail': {}}}


def _run(operation: str, client: ProximoxClient, func: Callable[[], Dict[str, Any]]) -> Response:
    try:
        return 200, func()
    except ProximoxError as e:
        logger.error(f"✗ Failed to {operation}: {e}")
        return error_response(e, client)


def cluster_status(client: ProximoxClient, cancel_event: Optional[threading.Event] = None) -> Response:
    return _run('fetch cluster status', client, lambda: client.get_cluster_status(cancel_event).to_dict())


def server_stats(client: ProximoxClient, cancel_event: Optional[threading.Event] = None) -> Response:
    return _run('fetch server stats', client, lambda: client.get_server_stats(cancel_event).to_dict())


def list_vms(client: ProximoxClient, cancel_event: Optional[threading.Event] = None) -> Response:
    return _run(
        'fetch virtual machines',
        client,
        lambda: {'vms': [vm.to_dict() for vm in client.get_virtual_machines(cancel_event)]},
    )


def vm_action(client: ProximoxClient, action: str, payload: Dict[str, Any],
              cancel_event: Optional[threading.Event] = None) -> Response:
    """Handle POST /vms/{action} with body {"vmId": ...}."""
    if action not in LIFECYCLE_ACTIONS:
        return bad_request('Invalid action. Use start, stop, or restart')

    vm_id = (payload or {}).get('vmId')
    if not vm_id:
        return bad_request('VM ID is required')

    past_tense = {'start': 'started', 'stop': 'stopped', 'restart': 'restarted'}

    def perform():
        client.vm_action(str(vm_id), action, cancel_event)
        return {'success': True, 'message': f'VM {vm_id} {past_tense[action]}'}

    return _run(f'{action} VM', client, perform)


def create_vm(client: ProximoxClient, payload: Dict[str, Any],
              cancel_event: Optional[threading.Event] = None) -> Response:
    """Handle POST /vms/create."""
    spec = VMSpec.from_payload(payload or {})
    try:
        spec.validate()
    except ProximoxError as e:
        logger.error(f"Missing required fields: {e.detail.get('missing')}")
        return error_response(e)

    def perform():
        result = client.create_vm(spec, cancel_event)
        return {
            'success': True,
            'message': f'VM {spec.name} created successfully',
            'vmId': result.vm_id,
            'data': result.to_dict(),
        }

    return _run('create VM', client, perform)


def test_connection(client: ProximoxClient, cancel_event: Optional[threading.Event] = None) -> Response:
    return _run('test connection', client, lambda: client.test_connection(cancel_event).to_dict())
