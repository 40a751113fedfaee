import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from backend.models_db import WizardSession
from engine.wizard import FLOW_STEPS, WizardFlow, WizardState

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _new_state(user_id: Optional[str], flow: WizardFlow) -> WizardState:
    flow = WizardFlow(flow)
    return WizardState(user_id=user_id, flow=flow, current_step=FLOW_STEPS[flow][0])


def derive_name(state: WizardState) -> str:
    return state.configuration.name or "New product"


class InMemoryWizardStore:
    def __init__(self, ttl_hours: int = 24):
        self._sessions: dict[str, WizardState] = {}
        self._lock = asyncio.Lock()
        self._ttl = timedelta(hours=ttl_hours)

    async def create_session(self, user_id: Optional[str] = None, flow: WizardFlow = WizardFlow.UNIFIED) -> WizardState:
        state = _new_state(user_id, flow)
        async with self._lock:
            self._sessions[state.id] = state
        return state

    async def get_session(self, session_id: str) -> Optional[WizardState]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def update_session(self, state: WizardState) -> WizardState:
        state = state.model_copy(update={"updated_at": _now()})
        async with self._lock:
            self._sessions[state.id] = state
        return state

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def list_sessions(self, user_id: Optional[str] = None) -> list[WizardState]:
        async with self._lock:
            sessions = list(self._sessions.values())
        if user_id:
            sessions = [s for s in sessions if s.user_id == user_id]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    async def cleanup_expired(self) -> int:
        now = _now()
        async with self._lock:
            expired = [sid for sid, s in self._sessions.items() if now - _aware(s.updated_at) > self._ttl]
            for sid in expired:
                del self._sessions[sid]
            return len(expired)


class SQLWizardStore:
    """Persistent wizard sessions; the whole state is stored as JSON.

    Sessions untouched for ``ttl_hours`` are deleted on startup and whenever
    a new session is created.
    """

    def __init__(self, session_factory=None, ttl_hours: int = 24):
        if session_factory is None:
            from backend.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory
        self._ttl = timedelta(hours=ttl_hours)

    @staticmethod
    def _to_state(row: WizardSession) -> WizardState:
        return WizardState.model_validate_json(row.state_json)

    async def create_session(self, user_id: Optional[str] = None, flow: WizardFlow = WizardFlow.UNIFIED) -> WizardState:
        await self.cleanup_expired()
        state = _new_state(user_id, flow)
        db = self._session_factory()
        try:
            db.add(WizardSession(
                id=state.id,
                user_id=user_id or "",
                name=derive_name(state),
                flow=state.flow.value,
                current_step=state.current_step.value,
                state_json=state.model_dump_json(),
            ))
            db.commit()
        finally:
            db.close()
        return state

    async def get_session(self, session_id: str) -> Optional[WizardState]:
        db = self._session_factory()
        try:
            row = db.get(WizardSession, session_id)
            if not row:
                return None
            return self._to_state(row)
        finally:
            db.close()

    async def update_session(self, state: WizardState) -> WizardState:
        state = state.model_copy(update={"updated_at": _now()})
        db = self._session_factory()
        try:
            row = db.get(WizardSession, state.id)
            if not row:
                return state
            row.name = derive_name(state)
            row.current_step = state.current_step.value
            row.state_json = state.model_dump_json()
            row.updated_at = state.updated_at
            db.commit()
        finally:
            db.close()
        return state

    async def delete_session(self, session_id: str) -> bool:
        db = self._session_factory()
        try:
            row = db.get(WizardSession, session_id)
            if not row:
                return False
            db.delete(row)
            db.commit()
            return True
        finally:
            db.close()

    async def list_sessions(self, user_id: Optional[str] = None) -> list[WizardState]:
        db = self._session_factory()
        try:
            query = db.query(WizardSession)
            if user_id:
                query = query.filter(WizardSession.user_id == user_id)
            rows = query.order_by(WizardSession.updated_at.desc()).all()
            return [self._to_state(r) for r in rows]
        finally:
            db.close()

    async def cleanup_expired(self) -> int:
        # Stored timestamps are naive UTC
        cutoff = (_now() - self._ttl).replace(tzinfo=None)
        db = self._session_factory()
        try:
            removed = (
                db.query(WizardSession)
                .filter(WizardSession.updated_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
        finally:
            db.close()
        if removed:
            logger.info("Removed %d expired wizard sessions", removed)
        return removed
