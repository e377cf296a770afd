"""Session persistence as key-value blobs, plus per-session turn locks."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from ..models import AgentConfig, Message, Session

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Read/write access to session blobs and their message logs."""

    def get_session(self, session_id: str) -> Session | None: ...
    def list_sessions(self) -> list[Session]: ...
    def save_session(self, session: Session) -> None: ...
    def list_messages(self, session_id: str) -> list[Message]: ...
    def commit(self, session: Session, messages: list[Message]) -> None: ...


class InMemorySessionStore:
    """Process-local store, used by tests and the ``memory`` backend."""

    def __init__(self) -> None:
        self._sessions: dict[str, str] = {}
        self._messages: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            raw = self._sessions.get(session_id)
        return Session.model_validate_json(raw) if raw is not None else None

    def list_sessions(self) -> list[Session]:
        with self._lock:
            raws = list(self._sessions.values())
        sessions = [Session.model_validate_json(raw) for raw in raws]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def save_session(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_dump_json()

    def list_messages(self, session_id: str) -> list[Message]:
        with self._lock:
            raws = list(self._messages.get(session_id, []))
        return [Message.model_validate_json(raw) for raw in raws]

    def commit(self, session: Session, messages: list[Message]) -> None:
        with self._lock:
            self._messages.setdefault(session.id, []).extend(m.model_dump_json() for m in messages)
            self._sessions[session.id] = session.model_dump_json()


class JsonFileSessionStore:
    """One JSON file per session and one JSON-lines file of messages per session."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.sessions_dir = self.root / "sessions"
        self.messages_dir = self.root / "messages"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.messages_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _session_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{Path(session_id).name}.json"

    def _messages_path(self, session_id: str) -> Path:
        return self.messages_dir / f"{Path(session_id).name}.jsonl"

    def _write_atomic(self, path: Path, text: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_session(self, session_id: str) -> Session | None:
        path = self._session_path(session_id)
        if not path.exists():
            return None
        return Session.model_validate_json(path.read_text(encoding="utf-8"))

    def list_sessions(self) -> list[Session]:
        sessions = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                sessions.append(Session.model_validate_json(path.read_text(encoding="utf-8")))
            except ValueError as exc:
                logger.warning("Skipping unreadable session file %s: %s", path.name, exc)
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def save_session(self, session: Session) -> None:
        with self._lock:
            self._write_atomic(self._session_path(session.id), session.model_dump_json(indent=2))

    def list_messages(self, session_id: str) -> list[Message]:
        path = self._messages_path(session_id)
        if not path.exists():
            return []
        lines = path.read_text(encoding="utf-8").splitlines()
        return [Message.model_validate_json(line) for line in lines if line.strip()]

    def commit(self, session: Session, messages: list[Message]) -> None:
        """Append the turn's messages, then replace the session blob."""
        with self._lock:
            if messages:
                with open(self._messages_path(session.id), "a", encoding="utf-8") as f:
                    for message in messages:
                        f.write(message.model_dump_json() + "\n")
            self._write_atomic(self._session_path(session.id), session.model_dump_json(indent=2))


def create_store(config: AgentConfig) -> SessionStore:
    backend = config.store_backend.lower()
    if backend == "memory":
        return InMemorySessionStore()
    if backend == "json":
        return JsonFileSessionStore(config.store_dir)
    raise ValueError(f"Unknown store backend: {config.store_backend!r}")


class SessionLocks:
    """One lock per session id. Turns on the same session run one at a time.

    An entry exists only while a caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(session_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[session_id] = (lock, users + 1)
            return lock

    def _release_entry(self, session_id: str) -> None:
        with self._guard:
            lock, users = self._locks[session_id]
            if users <= 1:
                del self._locks[session_id]
            else:
                self._locks[session_id] = (lock, users - 1)

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        lock = self._acquire_entry(session_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(session_id)
