"""
Origin/client verification for the relay.

Two flows share the nonce and secret infrastructure:

* Native apps send ``{deviceId, timestamp, nonce, bundleId, verificationHash}``
  and get back an app key plus a server challenge in a single round trip.
* Browsers on other origins send ``X-Timestamp``/``X-Signature`` headers with
  their ``Origin``; an accepted origin may open WebSocket connections for the
  rest of the process lifetime.
"""

import hashlib
import hmac
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Set

import redis

from constants import (
    APP_INITIAL_SHARED_KEY,
    APP_SHARED_SECRET,
    NONCE_BACKEND,
    NONCE_RETENTION_SECONDS,
    PRIMARY_ORIGIN,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    VERIFICATION_WINDOW_SECONDS,
    WEB_VERIFICATION_SECRET,
)
from errors import VerificationError, VerificationReason
from logging_config import get_logger
from redis_keys import REDIS_NONCE_KEY

logger = get_logger(__name__)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Nonce stores
# ---------------------------------------------------------------------------


class NonceStore(ABC):
    @abstractmethod
    def contains(self, nonce: str) -> bool: ...

    @abstractmethod
    def add(self, nonce: str) -> bool:
        """Record ``nonce``; False if it was already recorded."""

    def sweep(self) -> int:
        return 0


class MemoryNonceStore(NonceStore):
    def __init__(self, retention_seconds: int = NONCE_RETENTION_SECONDS, clock: Callable[[], float] = time.time):
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._first_used: Dict[str, float] = {}
        self._lock = threading.Lock()

    def contains(self, nonce: str) -> bool:
        with self._lock:
            return nonce in self._first_used

    def add(self, nonce: str) -> bool:
        with self._lock:
            if nonce in self._first_used:
                return False
            self._first_used[nonce] = self.clock()
            return True

    def sweep(self) -> int:
        cutoff = self.clock() - self.retention_seconds
        with self._lock:
            expired = [nonce for nonce, used_at in self._first_used.items() if used_at < cutoff]
            for nonce in expired:
                del self._first_used[nonce]
        if expired:
            logger.debug(f"Swept {len(expired)} expired nonces")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._first_used)


class RedisNonceStore(NonceStore):
    """Nonces as ``SET NX EX`` keys, so expiry is handled by Redis itself."""

    def __init__(self, redis_client: redis.Redis, retention_seconds: int = NONCE_RETENTION_SECONDS):
        self.redis_client = redis_client
        self.retention_seconds = retention_seconds

    @classmethod
    def from_settings(cls) -> "RedisNonceStore":
        client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        try:
            client.ping()
            logger.info(f"Redis nonce store connected to {REDIS_HOST}:{REDIS_PORT}")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise
        return cls(client)

    def contains(self, nonce: str) -> bool:
        return bool(self.redis_client.exists(REDIS_NONCE_KEY.format(nonce=nonce)))

    def add(self, nonce: str) -> bool:
        key = REDIS_NONCE_KEY.format(nonce=nonce)
        return bool(self.redis_client.set(key, str(time.time()), nx=True, ex=self.retention_seconds))


def create_nonce_store(backend: str = NONCE_BACKEND) -> NonceStore:
    if backend == "redis":
        return RedisNonceStore.from_settings()
    if backend != "memory":
        raise ValueError(f"Unknown nonce backend: {backend}")
    return MemoryNonceStore()


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class OriginVerifier:
    def __init__(
        self,
        nonce_store: NonceStore,
        initial_shared_key: str = APP_INITIAL_SHARED_KEY,
        shared_secret: str = APP_SHARED_SECRET,
        web_secret: str = WEB_VERIFICATION_SECRET,
        primary_origin: Optional[str] = PRIMARY_ORIGIN,
        window_seconds: int = VERIFICATION_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.nonce_store = nonce_store
        self.initial_shared_key = initial_shared_key
        self.web_secret = web_secret
        self.primary_origin = primary_origin
        self.window_seconds = window_seconds
        self.clock = clock
        self.app_key = sha256_hex(shared_secret)[:32]
        self.verified_origins: Set[str] = set()

    def verify_native(self, device_id: str, timestamp: str, nonce: str, bundle_id: str, verification_hash: str) -> Dict[str, str]:
        if self.nonce_store.contains(nonce):
            logger.warning(f"Native verification rejected: nonce reused (device {device_id})")
            raise VerificationError(VerificationReason.NONCE_REUSED)

        expected = sha256_hex(f"{device_id}:{timestamp}:{nonce}:{bundle_id}:{self.initial_shared_key}")
        # NOTE: plain equality, unlike verify_web which uses hmac.compare_digest
        if expected != verification_hash:
            logger.warning(f"Native verification rejected: invalid hash (device {device_id}, bundle {bundle_id})")
            raise VerificationError(VerificationReason.INVALID_VERIFICATION)

        if not self.nonce_store.add(nonce):
            logger.warning(f"Native verification rejected: nonce recorded concurrently (device {device_id})")
            raise VerificationError(VerificationReason.NONCE_REUSED)

        challenge = secrets.token_bytes(32).hex()
        logger.info(f"Native client verified: device {device_id}, bundle {bundle_id}")
        return {
            "app_key": self.app_key,
            "server_challenge": challenge,
            "server_verification": sha256_hex(f"{challenge}:{verification_hash}"),
        }

    def verify_web(self, timestamp: Optional[str], signature: Optional[str], origin: Optional[str]) -> str:
        if not timestamp or not signature or not origin:
            logger.warning(f"Web verification rejected: missing headers (origin={origin})")
            raise VerificationError(VerificationReason.MISSING_HEADERS)

        try:
            sent_at_ms = int(timestamp)
        except ValueError:
            logger.warning(f"Web verification rejected: unparseable timestamp {timestamp!r} from {origin}")
            raise VerificationError(VerificationReason.EXPIRED)

        # window applies in both directions
        age_ms = self.clock() * 1000 - sent_at_ms
        if abs(age_ms) > self.window_seconds * 1000:
            logger.warning(f"Web verification rejected: request from {origin} is {age_ms / 1000:.0f}s off the server clock")
            raise VerificationError(VerificationReason.EXPIRED)

        expected = hmac.new(self.web_secret.encode("utf-8"), f"{timestamp}:{origin}".encode("utf-8"), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            logger.warning(f"Web verification rejected: invalid signature from {origin}")
            raise VerificationError(VerificationReason.INVALID_SIGNATURE)

        if origin not in self.verified_origins:
            self.verified_origins.add(origin)
            logger.info(f"Origin verified: {origin}")
        return origin

    def is_origin_verified(self, origin: str) -> bool:
        return origin in self.verified_origins

    def is_connection_allowed(self, origin: Optional[str], app_key: Optional[str] = None) -> bool:
        """Gate for WebSocket connections.

        Browsers always send an Origin, which must be the primary origin or
        one verified through ``verify_web``. Native apps connect without an
        Origin and present the app key handed out by ``verify_native``.
        """
        if origin:
            return origin == self.primary_origin or origin in self.verified_origins
        return bool(app_key) and hmac.compare_digest(app_key.encode("utf-8"), self.app_key.encode("utf-8"))


origin_verifier = OriginVerifier(create_nonce_store())
