"""
AuthSession component - Login entry point.

Shell Layer - converts a tagged result into the login output model.
"""

from __future__ import annotations

from src.core.result import Err

from ._impl import AuthSession
from .models import LoginInput, LoginOutput


async def run_login(inp: LoginInput, *, session: AuthSession) -> LoginOutput:
    """Log in and report the outcome."""
    if not inp.email or not inp.password:
        return LoginOutput(success=False, error="Email and password are required")

    result = await session.login(inp.email, inp.password)
    if isinstance(result, Err):
        return LoginOutput(success=False, error=result.message, error_kind=result.kind)
    return LoginOutput(result=result.value, success=True)
