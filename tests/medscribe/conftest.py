from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence, Union

import pytest

from src.medscribe.domain.models.session_record import SessionRecord
from src.medscribe.infra.db.inmemory import InMemorySessionRecordRepository
from src.medscribe.services.transcription.backends import TranscriptionFailure
from src.medscribe.services.transcription.coordinator import TranscriptionCoordinator
from src.medscribe.services.transcription.gateway import SessionRecordGateway
from src.medscribe.services.transcription.registry import SessionRegistry


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedBackend:
    """Speech backend returning canned results in order.

    A TranscriptionFailure in the script is raised instead of returned.
    """

    name = "scripted"

    def __init__(self, results: Sequence[Union[str, TranscriptionFailure]] = ()) -> None:
        self.results: List[Union[str, TranscriptionFailure]] = list(results)
        self.calls: List[bytes] = []

    async def transcribe(self, audio: bytes) -> str:
        self.calls.append(audio)
        result = self.results.pop(0) if self.results else ""
        if isinstance(result, TranscriptionFailure):
            raise result
        return result


class RecordingRepository(InMemorySessionRecordRepository):
    """In-memory store that records transcript writes and can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.transcript_writes: List[str] = []
        self.fail_writes = False

    def update_fields(self, session_id: str, updates: Mapping[str, Any]) -> Optional[SessionRecord]:
        if self.fail_writes:
            raise RuntimeError("document store unavailable")
        if "transcript" in updates:
            self.transcript_writes.append(updates["transcript"])
        return super().update_fields(session_id, updates)


def make_record(session_id: str = "s1", owner_id: str = "u1", transcript: str = "") -> SessionRecord:
    now = datetime.now(timezone.utc)
    return SessionRecord(
        id=session_id,
        owner_id=owner_id,
        patient_name="Jane Roe",
        transcript=transcript,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def failure_factory():
    def _make(message: str = "upstream exploded") -> TranscriptionFailure:
        return TranscriptionFailure("http_status", message, "scripted")

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> RecordingRepository:
    repo = RecordingRepository()
    repo.save(make_record())
    return repo


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def coordinator(clock, repository, backend) -> TranscriptionCoordinator:
    return TranscriptionCoordinator(
        registry=SessionRegistry(clock=clock),
        gateway=SessionRecordGateway(repository),
        backend=backend,
        flush_interval=5.0,
        clock=clock,
    )
