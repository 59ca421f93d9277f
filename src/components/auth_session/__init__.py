"""
AuthSession component - Remote session lifecycle and authenticated calls.
"""

from ._impl import AuthSession
from .component import run_login
from .models import LoginInput, LoginOutput, LoginResult, SessionSnapshot, SessionState
from .ports import ApiResponse, RemoteApiPort, StateStorePort

__all__ = [
    # Entry points
    "run_login",
    # Services
    "AuthSession",
    # Models
    "LoginInput",
    "LoginOutput",
    "LoginResult",
    "SessionSnapshot",
    "SessionState",
    # Ports
    "ApiResponse",
    "RemoteApiPort",
    "StateStorePort",
]
