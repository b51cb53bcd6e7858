from datetime import timedelta

import pytest

from ricambi.auth.sessions import InMemorySessionStore
from ricambi.pricing.domain.errors import (
    AuthorizationError,
    SessionError,
    SessionExpiredError,
    SessionNotFoundError,
)
from ricambi.pricing.domain.models import Operator, OperatorProfile


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now = self.now + timedelta(**kw)


@pytest.fixture
def clock(fixed_now):
    return Clock(fixed_now)


@pytest.fixture
def store(clock):
    s = InMemorySessionStore(timeout_minutes=30, clock=clock).open()
    yield s
    s.close()


@pytest.fixture
def operator():
    return Operator(id="op-1", username="vendite", profile=OperatorProfile.SALES)


def test_create_and_validate(store, operator, fixed_now):
    session = store.create(operator, ip_address="10.0.0.1")

    assert store.validate(session.token) == session
    assert session.expires_at == fixed_now + timedelta(minutes=30)
    assert len(session.token) >= 40


def test_expired_session_is_removed(store, operator, clock):
    session = store.create(operator)
    clock.advance(minutes=31)

    with pytest.raises(SessionExpiredError):
        store.validate(session.token)
    with pytest.raises(SessionNotFoundError):
        store.validate(session.token)


def test_refresh_extends_expiry(store, operator, clock):
    session = store.create(operator)
    clock.advance(minutes=20)

    refreshed = store.refresh(session.token)
    clock.advance(minutes=20)

    assert refreshed.expires_at == clock.now + timedelta(minutes=10)
    assert store.validate(session.token).operator_id == "op-1"


def test_invalidate_operator_and_cleanup(store, operator, clock):
    other = Operator(id="op-2", username="magazzino", profile=OperatorProfile.WAREHOUSE)
    store.create(operator)
    store.create(operator)
    kept = store.create(other)

    assert len(store.active_sessions("op-1")) == 2
    assert store.invalidate_operator("op-1") == 2
    assert store.active_sessions("op-1") == []

    clock.advance(hours=1)
    assert store.active_sessions("op-2") == []
    assert store.cleanup_expired() == 1
    with pytest.raises(SessionNotFoundError):
        store.validate(kept.token)


def test_inactive_operator_cannot_log_in(store):
    with pytest.raises(AuthorizationError):
        store.create(Operator(id="x", username="x", is_active=False))


def test_closed_store_rejects_use(clock, operator):
    store = InMemorySessionStore(clock=clock)
    with pytest.raises(SessionError):
        store.create(operator)

    with store:
        token = store.create(operator).token
    # closing drops every session
    store.open()
    with pytest.raises(SessionNotFoundError):
        store.validate(token)
