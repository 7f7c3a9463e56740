from __future__ import annotations

import time
from dataclasses import dataclass, replace
from threading import Lock
from typing import Callable, Dict, List, Optional


@dataclass
class ActiveTranscriptionEntry:
    """In-memory state of one live transcription, keyed by connection id.

    ``transcript`` is the whole transcript under construction (seeded from the
    persisted record); ``persisted_transcript`` is the text last written to the
    store successfully.
    """

    connection_id: str
    session_id: str
    owner_id: str
    transcript: str
    last_activity_at: float
    last_flush_at: float
    persisted_transcript: str

    @property
    def has_unflushed_text(self) -> bool:
        return self.transcript != self.persisted_transcript


class RegistryEntryExistsError(RuntimeError):
    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id} already has an active transcription")
        self.connection_id = connection_id


class SessionRegistry:
    """Single authority for which connections have an active transcription.

    All mutations happen under one process-wide lock; readers get snapshot
    copies so an entry can never be changed outside the lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, ActiveTranscriptionEntry] = {}

    def create(
        self,
        connection_id: str,
        session_id: str,
        owner_id: str,
        initial_transcript: str = "",
    ) -> ActiveTranscriptionEntry:
        now = self._clock()
        with self._lock:
            if connection_id in self._entries:
                raise RegistryEntryExistsError(connection_id)
            entry = ActiveTranscriptionEntry(
                connection_id=connection_id,
                session_id=session_id,
                owner_id=owner_id,
                transcript=initial_transcript,
                last_activity_at=now,
                last_flush_at=now,
                persisted_transcript=initial_transcript,
            )
            self._entries[connection_id] = entry
            return replace(entry)

    def get(self, connection_id: str) -> Optional[ActiveTranscriptionEntry]:
        with self._lock:
            entry = self._entries.get(connection_id)
            return replace(entry) if entry is not None else None

    def append_text(self, connection_id: str, text: str) -> Optional[ActiveTranscriptionEntry]:
        """Append ``text`` separated by a single space; no-op when absent."""

        text = text.strip()
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                return None
            if text:
                base = entry.transcript.rstrip()
                entry.transcript = f"{base} {text}" if base else text
            entry.last_activity_at = self._clock()
            return replace(entry)

    def touch(self, connection_id: str) -> None:
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is not None:
                entry.last_activity_at = self._clock()

    def mark_flushed(self, connection_id: str, transcript: str) -> None:
        """Record that ``transcript`` was written to the store."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                return
            entry.persisted_transcript = transcript
            entry.last_flush_at = now
            entry.last_activity_at = now

    def remove(self, connection_id: str) -> Optional[ActiveTranscriptionEntry]:
        with self._lock:
            return self._entries.pop(connection_id, None)

    def list_stale(self, now: float, timeout: float) -> List[str]:
        cutoff = now - timeout
        with self._lock:
            return [cid for cid, entry in self._entries.items() if entry.last_activity_at < cutoff]

    def connection_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
