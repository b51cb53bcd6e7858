from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from ricambi.logging_config import get_logger
from ricambi.pricing.domain.errors import (
    AuthorizationError,
    SessionError,
    SessionExpiredError,
    SessionNotFoundError,
)
from ricambi.pricing.domain.models import Operator, OperatorProfile

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


@dataclass(frozen=True)
class Session:
    token: str
    operator_id: str
    username: str
    profile: OperatorProfile
    created_at: datetime
    expires_at: datetime
    ip_address: str = ""
    user_agent: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class SessionStore(Protocol):
    def create(self, operator: Operator, ip_address: str = "", user_agent: str = "") -> Session: ...
    def validate(self, token: str) -> Session: ...
    def refresh(self, token: str) -> Session: ...
    def invalidate(self, token: str) -> None: ...
    def invalidate_operator(self, operator_id: str) -> int: ...
    def active_sessions(self, operator_id: str) -> List[Session]: ...
    def cleanup_expired(self) -> int: ...


class InMemorySessionStore:
    """
    Operator sessions keyed by token.

    The store has an explicit lifecycle: open() before use, close() drops every
    session. Using a closed store raises SessionError.
    """

    def __init__(self, timeout_minutes: int = 480, clock: Optional[Clock] = None):
        self.timeout = timedelta(minutes=timeout_minutes)
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._open = False

    # --- lifecycle ---

    def open(self) -> "InMemorySessionStore":
        with self._lock:
            self._open = True
        return self

    def close(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "InMemorySessionStore":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise SessionError("session store is closed")

    # --- sessions ---

    def create(self, operator: Operator, ip_address: str = "", user_agent: str = "") -> Session:
        if not operator.is_active:
            raise AuthorizationError("operator is not active", meta={"operator": operator.username})
        now = self._clock()
        session = Session(
            token=generate_token(),
            operator_id=operator.id,
            username=operator.username,
            profile=operator.profile,
            created_at=now,
            expires_at=now + self.timeout,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        with self._lock:
            self._require_open()
            self._sessions[session.token] = session
        logger.info("session opened for {}", operator.username)
        return session

    def validate(self, token: str) -> Session:
        with self._lock:
            self._require_open()
            session = self._sessions.get(token)
            if session is None:
                raise SessionNotFoundError("session not found")
            if session.is_expired(self._clock()):
                del self._sessions[token]
                raise SessionExpiredError("authentication token expired")
            return session

    def refresh(self, token: str) -> Session:
        with self._lock:
            self._require_open()
            session = self._sessions.get(token)
            if session is None:
                raise SessionNotFoundError("session not found")
            now = self._clock()
            if session.is_expired(now):
                del self._sessions[token]
                raise SessionExpiredError("authentication token expired")
            session = replace(session, expires_at=now + self.timeout)
            self._sessions[token] = session
            return session

    def invalidate(self, token: str) -> None:
        with self._lock:
            self._require_open()
            self._sessions.pop(token, None)

    def invalidate_operator(self, operator_id: str) -> int:
        with self._lock:
            self._require_open()
            tokens = [t for t, s in self._sessions.items() if s.operator_id == operator_id]
            for token in tokens:
                del self._sessions[token]
        return len(tokens)

    def active_sessions(self, operator_id: str) -> List[Session]:
        now = self._clock()
        with self._lock:
            self._require_open()
            return [
                s for s in self._sessions.values()
                if s.operator_id == operator_id and not s.is_expired(now)
            ]

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            self._require_open()
            expired = [t for t, s in self._sessions.items() if s.is_expired(now)]
            for token in expired:
                del self._sessions[token]
        if expired:
            logger.debug("removed {} expired sessions", len(expired))
        return len(expired)
