"""
Ephemeral state store for SSO flows.

Key/value storage with per-key TTL and an atomic get-and-delete (``consume``)
used for CSRF and replay protection across the IdP redirect round trip.

Key scheme:
    sso:state:<token>          auth flow state            600s
    saml:request:<requestId>   SAML InResponseTo -> store 300s
    sso:creds:<token>          credential hand-off        300s
    sso:otp:<email>            OTP code                   600s

Backends never turn an outage into "no state": any backend error is raised as
StateStoreUnavailableError so the flow fails closed.
"""

import asyncio
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from redis.exceptions import RedisError

from sso_gateway.auth.errors import StateStoreUnavailableError
from sso_gateway.storage.redis_client import RedisClient
from sso_gateway.types.sso import AuthFlowState, HandoffCredentials, OTPRecord

logger = logging.getLogger(__name__)

FLOW_STATE_TTL_SECONDS = 600
SAML_REQUEST_TTL_SECONDS = 300
CREDENTIALS_TTL_SECONDS = 300
OTP_TTL_SECONDS = 600


# =============================================================================
# Backends
# =============================================================================


class StateBackend(ABC):
    """Key/value store with TTL and atomic consume. Values are JSON-encoded."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value without removing it, or None if absent/expired."""

    @abstractmethod
    async def consume(self, key: str) -> Optional[Any]:
        """Atomically return and delete the value, or None if absent/expired."""

    async def close(self) -> None:
        """Release backend resources."""

    async def health_check(self) -> dict:
        return {"backend": "memory", "status": "healthy"}


class RedisStateBackend(StateBackend):
    """Redis-backed store. ``consume`` is a single GETDEL command."""

    def __init__(self, client: RedisClient):
        self.client = client

    async def _redis(self):
        redis_conn = await self.client.get_client()
        if redis_conn is None:
            raise StateStoreUnavailableError(
                details={"reason": "redis connection unavailable"}
            )
        return redis_conn

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        redis_conn = await self._redis()
        try:
            await redis_conn.setex(key, ttl_seconds, json.dumps(value))
        except RedisError as e:
            logger.error(f"State store write failed for {key.split(':')[0]}:*: {e}")
            raise StateStoreUnavailableError(details={"operation": "set"}) from e

    async def get(self, key: str) -> Optional[Any]:
        redis_conn = await self._redis()
        try:
            data = await redis_conn.get(key)
        except RedisError as e:
            logger.error(f"State store read failed: {e}")
            raise StateStoreUnavailableError(details={"operation": "get"}) from e
        return json.loads(data) if data is not None else None

    async def consume(self, key: str) -> Optional[Any]:
        redis_conn = await self._redis()
        try:
            data = await redis_conn.getdel(key)
        except RedisError as e:
            logger.error(f"State store consume failed: {e}")
            raise StateStoreUnavailableError(details={"operation": "consume"}) from e
        return json.loads(data) if data is not None else None

    async def close(self) -> None:
        await self.client.close()

    async def health_check(self) -> dict:
        return {"backend": "redis", **(await self.client.health_check())}


class MemoryStateBackend(StateBackend):
    """
    In-process store for single-process deployments and tests.

    Entries expire on a monotonic clock; all access is serialized by a lock.
    Writes sweep out expired entries at most once per ``sweep_interval`` so
    abandoned flows do not accumulate.
    """

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._data: Dict[str, Tuple[float, str]] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval = sweep_interval
        self._last_sweep = time.monotonic()

    def _maybe_sweep(self, now: float) -> None:
        """Drop every expired entry if the sweep interval has elapsed."""
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now

        expired = [key for key, (expires_at, _) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]

        if expired:
            logger.debug(f"Swept {len(expired)} expired state entries")

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return payload

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            now = time.monotonic()
            self._maybe_sweep(now)
            self._data[key] = (now + ttl_seconds, json.dumps(value))

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            payload = self._live(key)
        return json.loads(payload) if payload is not None else None

    async def consume(self, key: str) -> Optional[Any]:
        async with self._lock:
            payload = self._live(key)
            if payload is not None:
                del self._data[key]
        return json.loads(payload) if payload is not None else None


# =============================================================================
# Typed Helpers
# =============================================================================


class SSOStateStore:
    """Auth flow state and SAML request tracking."""

    def __init__(self, backend: StateBackend):
        self.backend = backend

    @staticmethod
    def _state_key(state: str) -> str:
        return f"sso:state:{state}"

    @staticmethod
    def _request_key(request_id: str) -> str:
        return f"saml:request:{request_id}"

    async def save_flow_state(self, state: str, data: AuthFlowState) -> None:
        """Persist flow state under the state token for 10 minutes."""
        await self.backend.set(
            self._state_key(state), data.to_json_dict(), FLOW_STATE_TTL_SECONDS
        )

    async def get_flow_state(self, state: str) -> Optional[AuthFlowState]:
        """Peek at flow state without consuming it."""
        data = await self.backend.get(self._state_key(state))
        return AuthFlowState.model_validate(data) if data else None

    async def consume_flow_state(self, state: str) -> Optional[AuthFlowState]:
        """Return flow state exactly once."""
        data = await self.backend.consume(self._state_key(state))
        return AuthFlowState.model_validate(data) if data else None

    async def track_request(self, request_id: str, store_id: str) -> None:
        """Record an outstanding SAML AuthnRequest for 5 minutes."""
        await self.backend.set(
            self._request_key(request_id), store_id, SAML_REQUEST_TTL_SECONDS
        )

    async def consume_request(self, request_id: str) -> Optional[str]:
        """Return the owning store of a SAML request ID exactly once."""
        return await self.backend.consume(self._request_key(request_id))


class CredentialHandoffStore:
    """One-time credential hand-off tokens."""

    def __init__(self, backend: StateBackend):
        self.backend = backend

    @staticmethod
    def _key(token: str) -> str:
        return f"sso:creds:{token}"

    async def put(self, token: str, credentials: HandoffCredentials) -> None:
        await self.backend.set(
            self._key(token), credentials.to_json_dict(), CREDENTIALS_TTL_SECONDS
        )

    async def consume(self, token: str) -> Optional[HandoffCredentials]:
        data = await self.backend.consume(self._key(token))
        return HandoffCredentials.model_validate(data) if data else None


class OTPStore:
    """
    Email OTP codes, keyed by lowercased email.

    ``verify`` consumes the record only when the code matches; a wrong guess
    leaves it in place until it expires.
    """

    def __init__(self, backend: StateBackend):
        self.backend = backend

    @staticmethod
    def _key(email: str) -> str:
        return f"sso:otp:{email.lower()}"

    async def put(
        self,
        email: str,
        otp: str,
        store_id: str,
        customer_id: Optional[str] = None,
        return_to: Optional[str] = None,
    ) -> None:
        record = OTPRecord(
            otp=otp,
            store_id=store_id,
            customer_id=customer_id,
            return_to=return_to,
        )
        await self.backend.set(self._key(email), record.to_json_dict(), OTP_TTL_SECONDS)

    async def get(self, email: str) -> Optional[OTPRecord]:
        data = await self.backend.get(self._key(email))
        return OTPRecord.model_validate(data) if data else None

    async def verify(self, email: str, otp: str) -> Optional[OTPRecord]:
        """
        Check an OTP and consume it on match.

        Returns:
            The stored record on success, None if absent, expired or wrong.
        """
        record = await self.get(email)
        if record is None or not _otp_matches(record.otp, otp):
            return None

        consumed = await self.backend.consume(self._key(email))
        if not consumed:
            # Another request consumed it between the read and the delete
            return None

        consumed_record = OTPRecord.model_validate(consumed)
        if not _otp_matches(consumed_record.otp, otp):
            # A new code was issued between the read and the consume; it stays valid
            await self.backend.set(
                self._key(email), consumed_record.to_json_dict(), OTP_TTL_SECONDS
            )
            return None
        return consumed_record


def _otp_matches(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def create_state_backend(redis_url: Optional[str], **redis_kwargs) -> StateBackend:
    """
    Build the state backend for the configured deployment.

    Uses Redis when a URL is configured, otherwise an in-process store.
    """
    if redis_url:
        logger.info("Using Redis state backend")
        return RedisStateBackend(RedisClient(redis_url, **redis_kwargs))

    logger.warning(
        "REDIS_URL not set; using in-memory state backend "
        "(flows will not survive restarts or span replicas)"
    )
    return MemoryStateBackend()
