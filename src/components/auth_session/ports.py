"""
AuthSession component - Port interfaces.
"""

from __future__ import annotations

from src.core.ports.remote import ApiResponse, RemoteApiPort
from src.core.ports.state import StateStorePort

__all__ = ["ApiResponse", "RemoteApiPort", "StateStorePort"]
