"""Ephemeral storage for SSO flows."""

from .redis_client import RedisClient
from .state_store import (
    CredentialHandoffStore,
    MemoryStateBackend,
    OTPStore,
    RedisStateBackend,
    SSOStateStore,
    StateBackend,
    create_state_backend,
)

__all__ = [
    "RedisClient",
    "StateBackend",
    "RedisStateBackend",
    "MemoryStateBackend",
    "SSOStateStore",
    "CredentialHandoffStore",
    "OTPStore",
    "create_state_backend",
]
