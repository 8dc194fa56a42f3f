"""HTTP transport for the hypervisor API."""

import logging
from typing import Dict, Optional, Tuple

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InsecureRequestWarning

from .errors import HypervisorConnectionError, RequestTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0  # in seconds

# Substrings of low-level socket errors, checked in order
_CONNECTION_REASONS = (
    ('dns', ('Name or service not known', 'nodename nor servname', 'getaddrinfo failed',
             'NameResolutionError', 'Temporary failure in name resolution', 'No address associated')),
    ('refused', ('Connection refused', 'ConnectionRefusedError', 'actively refused')),
    ('unreachable', ('Network is unreachable', 'No route to host', 'Host is unreachable')),
)


def classify_connection_error(error: Exception) -> str:
    """Map a requests connection failure to dns, refused, unreachable or unknown."""
    text = str(error)
    for reason, markers in _CONNECTION_REASONS:
        if any(marker in text for marker in markers):
            return reason
    return 'unknown'


class Transport:
    """Sends single HTTP(S) requests through a pooled requests session.

    Certificate verification is off by default because hypervisors usually
    ship self-signed certificates; pass ``verify_ssl=True`` for a trusted CA.
    Redirects are never followed and nothing is retried.
    """

    def __init__(self, verify_ssl: bool = False, timeout: float = DEFAULT_TIMEOUT, pool_size: int = 8):
        self.verify_ssl = verify_ssl
        self.timeout = timeout

        if not verify_ssl:
            # Suppress SSL warnings for self-signed certificates
            urllib3.disable_warnings(category=InsecureRequestWarning)

        self.session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)

    def send(
        self,
        url: str,
        method: str = 'GET',
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[int, str]:
        """Issue one request.

        Args:
            url: Absolute URL
            method: HTTP verb
            headers: Request headers
            body: Already encoded request body
            timeout: Override of the client timeout, in seconds

        Returns:
            Tuple of (status code, raw response body)

        Raises:
            RequestTimeout: no answer within the timeout
            HypervisorConnectionError: DNS, refused, unreachable or TLS failure
        """
        timeout = timeout if timeout is not None else self.timeout

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=body,
                verify=self.verify_ssl,
                timeout=timeout,
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as e:
            raise RequestTimeout(
                f"Request timeout - server did not respond within {timeout:g} seconds",
                url=url,
            ) from e
        except requests.exceptions.SSLError as e:
            raise HypervisorConnectionError(
                f"SSL certificate error: {e}", reason='certificate', url=url
            ) from e
        except requests.exceptions.ConnectionError as e:
            reason = classify_connection_error(e)
            raise HypervisorConnectionError(f"Connection failed: {e}", reason=reason, url=url) from e
        except requests.exceptions.RequestException as e:
            raise HypervisorConnectionError(f"Request failed: {e}", url=url) from e

        return response.status_code, response.text

    def close(self) -> None:
        self.session.close()
