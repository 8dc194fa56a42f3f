"""Error taxonomy for the ProximoX hypervisor client.

Every failure raised by the client derives from ProximoxError. The inbound
handlers serialize these as {"kind", "message", "detail"} using the
status_code declared on each class.
"""

from typing import Any, Dict, List, Optional


class ProximoxError(Exception):
    """Base class for all client failures."""

    kind: str = "ProximoxError"
    status_code: int = 500

    def __init__(self, message: str = "", detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the HTTP boundary."""
        return {
            'kind': self.kind,
            'message': self.message,
            'detail': self.detail,
        }


class HypervisorConnectionError(ProximoxError):
    """DNS failure, refused or unreachable host, TLS failure."""

    kind = "ConnectionError"

    # reason -> HTTP status used by the handlers
    REASON_STATUS = {
        'dns': 404,
        'refused': 503,
        'unreachable': 503,
        'certificate': 526,
        'timeout': 408,
        'unknown': 503,
    }

    def __init__(self, message: str, reason: str = 'unknown', url: Optional[str] = None):
        super().__init__(message, {'reason': reason, 'url': url})
        self.reason = reason
        self.url = url

    @property
    def status_code(self) -> int:
        return self.REASON_STATUS.get(self.reason, 503)


class RequestTimeout(HypervisorConnectionError):
    """The hypervisor did not answer within the client timeout."""

    kind = "Timeout"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, reason='timeout', url=url)


class RequestCancelled(ProximoxError):
    """The caller cancelled the operation before the request was sent."""

    kind = "RequestCancelled"
    status_code = 408


class AuthenticationFailed(ProximoxError):
    """The ticket endpoint rejected the credentials."""

    kind = "AuthenticationFailed"
    status_code = 401

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message, {'status': status, 'body': body})
        self.status = status
        self.body = body


class MalformedAuthResponse(ProximoxError):
    kind = "MalformedAuthResponse"
    status_code = 502


class APIError(ProximoxError):
    """Any non-200 answer from an endpoint other than the ticket endpoint."""

    kind = "APIError"

    PASSTHROUGH_STATUS = (401, 403, 404)

    def __init__(self, status: int, body: str, endpoint: Optional[str] = None):
        super().__init__(
            f"Hypervisor API error: {status} - {body}",
            {'status': status, 'body': body, 'endpoint': endpoint},
        )
        self.status = status
        self.body = body
        self.endpoint = endpoint

    @property
    def status_code(self) -> int:
        return self.status if self.status in self.PASSTHROUGH_STATUS else 502


class InvalidResponseFormat(ProximoxError):
    kind = "InvalidResponseFormat"
    status_code = 502

    def __init__(self, message: str, raw_body: str = ""):
        super().__init__(message, {'body': raw_body})
        self.raw_body = raw_body


class VMNotFound(ProximoxError):
    kind = "VMNotFound"
    status_code = 404

    def __init__(self, vm_id: str):
        super().__init__(f"VM {vm_id} not found on any node", {'vmId': vm_id})
        self.vm_id = vm_id


class VMCreationFailed(ProximoxError):
    kind = "VMCreationFailed"
    status_code = 500

    def __init__(self, status: int, body: str):
        super().__init__(f"VM creation failed: {status} - {body}", {'status': status, 'body': body})
        self.status = status
        self.body = body


class NoNodesAvailable(ProximoxError):
    kind = "NoNodesAvailable"
    status_code = 503

    def __init__(self, message: str = "No nodes available in the cluster"):
        super().__init__(message)


class InvalidSpec(ProximoxError):
    """A VM creation request is missing required fields."""

    kind = "InvalidSpec"
    status_code = 400

    def __init__(self, missing: List[str]):
        super().__init__(
            f"Missing required fields: {', '.join(missing)}",
            {'missing': list(missing)},
        )
        self.missing = list(missing)


class VMIDFallbackWarning(UserWarning):
    """The VM ID was picked at random because the cluster scan failed."""
