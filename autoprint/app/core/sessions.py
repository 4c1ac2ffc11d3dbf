"""
Operator session store.

Operators authenticate with the configured admin credentials and receive an
opaque bearer token. The token maps to a session record that slides forward
on every use and expires after `admin_session_ttl_hours` of inactivity.

Two backends share one interface:
- InMemorySessionStore: single-process default, swept by the maintenance task.
- RedisSessionStore: TTL-based, shared between workers.

The store is owned by the application (`app.state.session_store`).
"""

import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from autoprint.app.core.clock import utcnow

logger = logging.getLogger("autoprint.sessions")

# Redis key prefix for operator sessions
SESSION_KEY_PREFIX = "admin:session:"


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


class AdminSessionStore:
    """Interface of an operator session store."""

    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    async def create(self, username: str, email: Optional[str] = None) -> str:
        raise NotImplementedError

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the session and extend its expiry, or None if unknown or expired."""
        raise NotImplementedError

    async def expire(self, token: str) -> bool:
        raise NotImplementedError

    async def sweep(self) -> int:
        """Drop expired sessions; returns how many were removed."""
        raise NotImplementedError


class InMemorySessionStore(AdminSessionStore):

    def __init__(self, ttl: timedelta):
        super().__init__(ttl)
        self._sessions: Dict[str, Dict[str, Any]] = {}

    async def create(self, username: str, email: Optional[str] = None) -> str:
        token = new_session_token()
        now = utcnow()
        self._sessions[token] = {
            "username": username,
            "email": email,
            "created_at": now,
            "expires_at": now + self.ttl,
        }
        return token

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(token)
        if session is None:
            return None

        now = utcnow()
        if session["expires_at"] <= now:
            del self._sessions[token]
            return None

        session["expires_at"] = now + self.ttl
        return dict(session)

    async def expire(self, token: str) -> bool:
        return self._sessions.pop(token, None) is not None

    async def sweep(self) -> int:
        now = utcnow()
        expired = [token for token, session in self._sessions.items() if session["expires_at"] <= now]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    def __len__(self):
        return len(self._sessions)


class RedisSessionStore(AdminSessionStore):
    """
    Sessions as JSON values under `admin:session:<token>` with a Redis TTL.

    Expiry is enforced by Redis itself, so `sweep` has nothing to do.
    """

    def __init__(self, redis, ttl: timedelta):
        super().__init__(ttl)
        self.redis = redis

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    async def create(self, username: str, email: Optional[str] = None) -> str:
        token = new_session_token()
        payload = {
            "username": username,
            "email": email,
            "created_at": utcnow().isoformat(),
        }
        await self.redis.setex(f"{SESSION_KEY_PREFIX}{token}", self.ttl_seconds, json.dumps(payload))
        return token

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = f"{SESSION_KEY_PREFIX}{token}"
        raw = await self.redis.get(key)
        if raw is None:
            return None

        await self.redis.expire(key, self.ttl_seconds)
        session = json.loads(raw)
        session["created_at"] = datetime.fromisoformat(session["created_at"]).astimezone(timezone.utc)
        return session

    async def expire(self, token: str) -> bool:
        return await self.redis.delete(f"{SESSION_KEY_PREFIX}{token}") > 0

    async def sweep(self) -> int:
        return 0


def build_session_store(settings) -> AdminSessionStore:
    """
    Pick the session backend named by `settings.session_backend`.
    """
    ttl = timedelta(hours=settings.admin_session_ttl_hours)
    if settings.session_backend == "redis":
        from autoprint.app.core.redis_client import redis_client
        logger.info("Using Redis operator session store")
        return RedisSessionStore(redis_client, ttl)
    if settings.session_backend != "memory":
        raise ValueError(f"Unknown session backend: {settings.session_backend}")
    return InMemorySessionStore(ttl)
