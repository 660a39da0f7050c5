from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Hashable, Iterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatcommerce.core.config import SESSION_TTL_HOURS
from chatcommerce.fsm.states import SessionState, coerce_state
from chatcommerce.models.chat_session import ChatSession
from chatcommerce.services.cart import cart_total, empty_cart, load_cart, store_cart

logger = logging.getLogger(__name__)


class KeyedLockRegistry:
    """One lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock, refs = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, refs + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, refs = self._locks[key]
                if refs <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, refs - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


SESSION_LOCKS = KeyedLockRegistry()


def _as_aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; they were written as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_stale(session: ChatSession, *, now: datetime | None = None, ttl_hours: int = SESSION_TTL_HOURS) -> bool:
    last_activity = _as_aware(session.last_activity)
    if last_activity is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now - last_activity > timedelta(hours=ttl_hours)


def reset_session(session: ChatSession) -> None:
    session.state = SessionState.IDLE.value
    session.current_flow = None
    session.current_step = None
    session.temp_customer_info = None
    empty_cart(session)


def _new_session(tenant_id: int, customer_phone: str, now: datetime) -> ChatSession:
    session = ChatSession(
        tenant_id=tenant_id,
        customer_phone=customer_phone,
        state=SessionState.IDLE.value,
        last_activity=now,
    )
    store_cart(session, [])
    return session


def load_session(
    db: Session, *, tenant_id: int, customer_phone: str, now: datetime | None = None
) -> tuple[ChatSession, bool]:
    """Fetch or create the session for (tenant, phone); returns (session, created).

    A session idle for longer than the TTL is reset to idle with an empty cart
    and committed before it is handed out. Unknown state strings are coerced
    to idle the same way.
    """
    now = now or datetime.now(timezone.utc)
    session = (
        db.query(ChatSession)
        .filter(ChatSession.tenant_id == tenant_id, ChatSession.customer_phone == customer_phone)
        .first()
    )
    if session is None:
        session = _new_session(tenant_id, customer_phone, now)
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            # Another worker created it first.
            db.rollback()
            session = (
                db.query(ChatSession)
                .filter(ChatSession.tenant_id == tenant_id, ChatSession.customer_phone == customer_phone)
                .one()
            )
        else:
            logger.info("Session created", extra={"event": "session_created", "state": session.state})
            return session, True

    dirty = False
    if is_stale(session, now=now):
        logger.info("Session stale, resetting", extra={"event": "session_expired", "state": session.state})
        reset_session(session)
        dirty = True
    else:
        state = coerce_state(session.state)
        if state.value != session.state:
            session.state = state.value
            dirty = True
        # Stored totals are not trusted.
        lines = load_cart(session)
        if round(float(session.cart_total or 0), 2) != cart_total(lines) or len(lines) != len(session.cart or []):
            store_cart(session, lines)
            dirty = True

    if dirty:
        session.last_activity = now
        db.commit()
    return session, False


def save_session(db: Session, session: ChatSession) -> None:
    session.last_activity = datetime.now(timezone.utc)
    store_cart(session, load_cart(session))
    db.commit()
