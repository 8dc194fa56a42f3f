"""Configuration management for the ProximoX dashboard."""

import os
from typing import Optional
from dotenv import load_dotenv

from .models import ServerConfig

# Load environment variables
load_dotenv()

PROTOCOLS = ('http', 'https')


class ProximoxConfig:
    """Configuration for the hypervisor connection."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        # Hypervisor connection
        self.proximox_host: str = os.getenv('PROXIMOX_HOST', '')
        self.proximox_port: str = os.getenv('PROXIMOX_PORT', '8006')
        self.proximox_protocol: str = os.getenv('PROXIMOX_PROTOCOL', 'https').lower()
        self.proximox_api_token: Optional[str] = os.getenv('PROXIMOX_API_TOKEN') or None
        self.proximox_username: Optional[str] = os.getenv('PROXIMOX_USERNAME') or None
        self.proximox_password: Optional[str] = os.getenv('PROXIMOX_PASSWORD') or None
        self.verify_ssl: bool = os.getenv('VERIFY_SSL', 'false').lower() == 'true'

        # Client behaviour
        self.request_timeout: str = os.getenv('REQUEST_TIMEOUT', '15')
        self.max_workers: str = os.getenv('MAX_WORKERS', '8')

        # VM creation defaults
        self.default_storage: str = os.getenv('DEFAULT_STORAGE', 'local-lvm')
        self.default_bridge: str = os.getenv('DEFAULT_BRIDGE', 'vmbr0')

        # Validate required settings
        self._validate()

    def _validate(self) -> None:
        """Validate that required configuration is present."""
        if not self.proximox_host:
            raise ValueError("PROXIMOX_HOST is required")

        if self.proximox_protocol not in PROTOCOLS:
            raise ValueError(f"PROXIMOX_PROTOCOL must be one of {', '.join(PROTOCOLS)}")

        for name, value in (
            ('PROXIMOX_PORT', self.proximox_port),
            ('MAX_WORKERS', self.max_workers),
        ):
            if not value.isdigit() or int(value) < 1:
                raise ValueError(f"{name} must be a positive integer")

        try:
            if float(self.request_timeout) <= 0:
                raise ValueError
        except ValueError:
            raise ValueError("REQUEST_TIMEOUT must be a positive number of seconds")

        if not self.proximox_api_token and not (self.proximox_username and self.proximox_password):
            raise ValueError(
                "Either PROXIMOX_API_TOKEN or both PROXIMOX_USERNAME and "
                "PROXIMOX_PASSWORD must be provided"
            )

    @property
    def auth_method(self) -> str:
        """Return the authentication method being used."""
        return "token" if self.proximox_api_token else "password"

    @property
    def server_config(self) -> ServerConfig:
        """Build the immutable connection settings handed to a client."""
        return ServerConfig(
            host=self.proximox_host,
            port=int(self.proximox_port),
            protocol=self.proximox_protocol,
            api_token=self.proximox_api_token,
            username=self.proximox_username,
            password=self.proximox_password,
            verify_ssl=self.verify_ssl,
            timeout=float(self.request_timeout),
            max_workers=int(self.max_workers),
            default_storage=self.default_storage,
            default_bridge=self.default_bridge,
        )
