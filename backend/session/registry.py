"""
Registry of live stream sessions, keyed by generated session id.

Only sessions whose model stream opened successfully are registered.
Sessions share nothing through the registry beyond their entry.
"""

from __future__ import annotations

from uuid import uuid4

from session.stream_session import StreamSession


def new_session_id() -> str:
    """Generate a session identifier."""
    return f"sess_{uuid4().hex[:12]}"


class SessionRegistry:
    """Process-wide map of session_id -> StreamSession."""

    def __init__(self) -> None:
        self._sessions: dict[str, StreamSession] = {}

    def add(self, session: StreamSession) -> None:
        """Register an open session. Ids are never reused."""
        if session.session_id in self._sessions:
            raise KeyError(f"duplicate session id: {session.session_id}")
        self._sessions[session.session_id] = session

    def remove(self, session_id: str) -> StreamSession | None:
        """Drop a session; returns it, or None if unknown."""
        return self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
