# nexus_search/auth.py
"""
Session-to-identity resolution and pluggable per-identity rate limiter.

Sign-in itself happens at the external auth provider; this module only maps
the session token it issued to a user identity.

Env vars:
- MOCK_AUTH (default: true) - dev mode, identity is the raw x-user-id header
- SESSION_TOKENS - comma-separated token=user_id pairs
- SESSION_TOKENS_FILE - optional path to file with one token=user_id per line
- RATE_LIMIT_PER_MINUTE (default: 60)
- REDIS_URL - optional, enables Redis-based distributed limiter
"""

import os
import time
import threading
from typing import Optional, Tuple, Dict

from nexus_search import monitoring

# Redis is only needed for the distributed limiter
try:
    import redis as _redis_mod
except ImportError:
    _redis_mod = None

# Configuration
MOCK_AUTH = os.getenv("MOCK_AUTH", "true").lower() in ("1", "true", "yes")
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
SESSION_TOKENS_ENV = os.getenv("SESSION_TOKENS", "")
SESSION_TOKENS_FILE = os.getenv("SESSION_TOKENS_FILE", "")
REDIS_URL = os.getenv("REDIS_URL", "")

USER_ID_HEADER = "x-user-id"
SESSION_TOKEN_HEADER = "x-session-token"


def _parse_pair(entry: str) -> Optional[Tuple[str, str]]:
    token, sep, user_id = entry.strip().partition("=")
    token, user_id = token.strip(), user_id.strip()
    if not sep or not token or not user_id:
        return None
    return token, user_id


def _load_sessions() -> Dict[str, str]:
    sessions: Dict[str, str] = {}
    if SESSION_TOKENS_ENV:
        for entry in SESSION_TOKENS_ENV.split(","):
            pair = _parse_pair(entry)
            if pair:
                sessions[pair[0]] = pair[1]
    if SESSION_TOKENS_FILE and os.path.exists(SESSION_TOKENS_FILE):
        with open(SESSION_TOKENS_FILE, "r", encoding="utf-8") as f:
            for line in f:
                pair = _parse_pair(line)
                if pair:
                    sessions[pair[0]] = pair[1]
    return sessions


SESSIONS = _load_sessions()


class InMemoryFixedWindowLimiter:
    """Thread-safe in-memory fixed-window rate limiter (per-process)."""

    def __init__(self, limit_per_minute: int = 60):
        self.limit = limit_per_minute
        self._store: Dict[str, Tuple[int, int]] = {}  # identity -> (window_minute, count)
        self._lock = threading.Lock()

    def allow_request(self, key: str) -> Tuple[bool, Optional[int]]:
        window = int(time.time()) // 60
        with self._lock:
            wstart, count = self._store.get(key, (window, 0))
            if wstart != window:
                wstart, count = window, 0
            if count >= self.limit:
                return False, 0
            self._store[key] = (wstart, count + 1)
            return True, self.limit - (count + 1)

    def reset(self):
        """Reset all state (useful for tests)."""
        with self._lock:
            self._store.clear()


class RedisFixedWindowLimiter:
    """Redis fixed-window counter using INCR + EXPIRE."""

    def __init__(self, redis_url: str, limit_per_minute: int = 60):
        if _redis_mod is None:
            raise RuntimeError("redis package not installed")
        self.limit = limit_per_minute
        self._client = _redis_mod.from_url(redis_url, decode_responses=True)

    def allow_request(self, key: str) -> Tuple[bool, Optional[int]]:
        window = int(time.time()) // 60
        rkey = f"rate:{key}:{window}"
        try:
            count = int(self._client.incr(rkey))
            if count == 1:
                self._client.expire(rkey, 120)
        except _redis_mod.RedisError:
            # Fail open on Redis errors
            monitoring.logger.warning("Redis rate limiter unavailable, allowing request")
            return True, None
        if count > self.limit:
            return False, 0
        return True, self.limit - count


def _make_limiter():
    if REDIS_URL and _redis_mod is not None:
        try:
            return RedisFixedWindowLimiter(REDIS_URL, RATE_LIMIT_PER_MINUTE)
        except Exception:
            monitoring.logger.exception("Could not create Redis limiter, using in-memory limiter")
    return InMemoryFixedWindowLimiter(RATE_LIMIT_PER_MINUTE)


_rate_limiter = _make_limiter()


def resolve_identity(headers) -> Optional[str]:
    """Return the caller's identity from request headers, or None for no session."""
    if MOCK_AUTH:
        user_id = (headers.get(USER_ID_HEADER) or "").strip()
        return user_id or None
    token = (headers.get(SESSION_TOKEN_HEADER) or "").strip()
    if not token:
        return None
    return SESSIONS.get(token)


def check_rate_limit(identity: str) -> Tuple[bool, Optional[int]]:
    """Check and consume quota. Returns (allowed, remaining)."""
    if MOCK_AUTH:
        return True, None
    return _rate_limiter.allow_request(identity)


def get_limiter():
    """Return the current limiter instance (for testing)."""
    return _rate_limiter
