# backend/services/sessions.py

from __future__ import annotations

import asyncio
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from core.logging import get_logger

logger = get_logger(__name__)


class SessionStore:
    """In-memory session store keyed by an opaque cookie value."""

    def __init__(self, max_age: int = 7 * 24 * 3600) -> None:
        self.max_age = max_age
        self.sessions: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def create(self, state: Optional[str] = None, user_id: Optional[str] = None) -> str:
        """Create a new session."""
        session_id = secrets.token_urlsafe(32)
        self.sessions[session_id] = {
            "state": state,
            "user_id": user_id,
            "created_at": self._now(),
            "expires_at": self._now() + timedelta(seconds=self.max_age),
        }
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Get session if it exists and hasn't expired."""
        if not session_id:
            return None
        session = self.sessions.get(session_id)
        if not session:
            return None

        if self._now() > session["expires_at"]:
            del self.sessions[session_id]
            return None

        return session

    def update(self, session_id: str, data: Dict[str, Any]) -> None:
        """Update session data and extend its lifetime."""
        if session_id in self.sessions:
            self.sessions[session_id].update(data)
            self.sessions[session_id]["expires_at"] = self._now() + timedelta(seconds=self.max_age)

    def delete(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    def cleanup_expired(self) -> int:
        now = self._now()
        expired = [sid for sid, sess in self.sessions.items() if sess["expires_at"] < now]
        for sid in expired:
            del self.sessions[sid]
        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    async def run_periodic_cleanup(self, interval: float = 300) -> None:
        """Background task to clean expired sessions."""
        while True:
            await asyncio.sleep(interval)
            self.cleanup_expired()
