"""Hypervisor cluster client for the ProximoX dashboard."""

from .client import ProximoxClient
from .models import ServerConfig, VMSpec

__all__ = ['ProximoxClient', 'ServerConfig', 'VMSpec']
