"""Shared fixtures: a recording fake transport standing in for the hypervisor."""

import json
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import parse_qs

import pytest

from proximox.client import ProximoxClient
from proximox.models import ServerConfig

API_ROOT = '/api2/json'

TICKET = 'PVE:root@pam:TICKET'
CSRF = 'CSRF-TOKEN'

Route = Union[Tuple[int, str], Exception, Callable[[Optional[str]], Tuple[int, str]]]


def envelope(data: Any) -> str:
    return json.dumps({'data': data})


class FakeTransport:
    """Answers requests from a route table and records every call."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def add(self, method: str, path: str, data: Any = None, status: int = 200,
            raw: Optional[str] = None, error: Optional[Exception] = None,
            handler: Optional[Callable] = None) -> None:
        if error is not None:
            self.routes[(method, path)] = error
        elif handler is not None:
            self.routes[(method, path)] = handler
        else:
            self.routes[(method, path)] = (status, raw if raw is not None else envelope(data))

    def send(self, url, method='GET', headers=None, body=None, timeout=None):
        path = url.split(API_ROOT, 1)[1]
        with self._lock:
            self.calls.append({
                'method': method,
                'path': path,
                'headers': dict(headers or {}),
                'body': body,
            })
        route = self.routes.get((method, path))
        if route is None:
            return 404, json.dumps({'data': None, 'message': f'no route {method} {path}'})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(body)
        return route

    def close(self):
        pass

    def calls_to(self, method: str, path: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            call for call in self.calls
            if call['method'] == method and (path is None or call['path'] == path)
        ]

    def form(self, call: Dict[str, Any]) -> Dict[str, str]:
        """Decode a recorded form body into single values."""
        return {key: values[0] for key, values in parse_qs(call['body'] or '').items()}


def add_ticket_route(transport: FakeTransport) -> None:
    transport.add('POST', '/access/ticket', {
        'ticket': TICKET,
        'CSRFPreventionToken': CSRF,
        'username': 'root@pam',
    })


def node_status(cpu=0.25, cpus=8, used=4 * 1024 ** 3, total=16 * 1024 ** 3, uptime=3600):
    return {
        'cpu': cpu,
        'cpuinfo': {'cpus': cpus, 'model': 'AMD EPYC 7302', 'sockets': 1, 'cores': cpus},
        'memory': {'used': used, 'total': total, 'free': total - used},
        'uptime': uptime,
        'pveversion': 'pve-manager/8.1.3/b46aac3b42da5d15',
        'loadavg': ['0.10', '0.20', '0.30'],
    }


@pytest.fixture
def server():
    return ServerConfig(
        host='pve.example.com',
        port=8006,
        protocol='https',
        username='root@pam',
        password='secret',
        max_workers=4,
    )


@pytest.fixture
def token_server():
    return ServerConfig(
        host='pve.example.com',
        api_token='root@pam!dash=abc-123',
        max_workers=4,
    )


@pytest.fixture
def transport():
    fake = FakeTransport()
    add_ticket_route(fake)
    return fake


@pytest.fixture
def client(server, transport):
    return ProximoxClient(server, transport=transport)
