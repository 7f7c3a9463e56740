from datetime import datetime, timedelta, timezone

import pytest

from src.medscribe.config import settings
from src.medscribe.domain.models.session_record import SessionStatus
from src.medscribe.infra.db import inmemory as repos
from src.medscribe.infra.db.bootstrap import init_sql_repositories
from src.medscribe.infra.db.models import Base
from src.medscribe.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.medscribe.infra.db.sql_sessions import SqlSessionRecordRepository
from src.medscribe.services.transcription.coordinator import TranscriptionCoordinator
from src.medscribe.services.transcription.gateway import SessionRecordGateway
from src.medscribe.services.transcription.registry import SessionRegistry


@pytest.fixture
def sql_repository(tmp_path):
    engine = create_sqlalchemy_engine(f"sqlite:///{tmp_path / 'sessions.db'}")
    Base.metadata.create_all(engine)
    return SqlSessionRecordRepository(create_sqlalchemy_session_factory(engine))


def test_save_get_update_delete(sql_repository, record_factory):
    sql_repository.save(record_factory(session_id="s1", owner_id="u1"))

    loaded = sql_repository.get("s1")
    assert loaded.owner_id == "u1"
    assert loaded.status is SessionStatus.ACTIVE
    assert loaded.entities == []

    updated = sql_repository.update_fields(
        "s1",
        {"transcript": "blood pressure normal", "entities": [{"type": "vital", "text": "blood pressure"}]},
    )
    assert updated.transcript == "blood pressure normal"
    assert sql_repository.get("s1").entities == [{"type": "vital", "text": "blood pressure"}]

    assert sql_repository.update_fields("missing", {"transcript": "x"}) is None
    assert sql_repository.delete("s1") is True
    assert sql_repository.delete("s1") is False
    assert sql_repository.get("s1") is None


def test_list_by_owner_filters_and_orders_newest_first(sql_repository, record_factory):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for index, session_id in enumerate(["old", "mid", "new"]):
        record = record_factory(session_id=session_id, owner_id="u1")
        sql_repository.save(record.model_copy(update={"created_at": base + timedelta(hours=index)}))
    sql_repository.save(record_factory(session_id="other", owner_id="u2"))
    sql_repository.update_fields("mid", {"status": SessionStatus.COMPLETED})

    assert [r.id for r in sql_repository.list_by_owner("u1")] == ["new", "mid", "old"]
    assert [r.id for r in sql_repository.list_by_owner("u1", limit=1, offset=1)] == ["mid"]
    assert [r.id for r in sql_repository.list_by_owner("u1", status=SessionStatus.ACTIVE)] == ["new", "old"]


async def test_coordinator_flushes_into_sql_store(sql_repository, record_factory, backend, clock):
    sql_repository.save(record_factory(session_id="s1", owner_id="u1", transcript="history:"))
    coordinator = TranscriptionCoordinator(
        registry=SessionRegistry(clock=clock),
        gateway=SessionRecordGateway(sql_repository),
        backend=backend,
        flush_interval=5.0,
        clock=clock,
    )
    backend.results = ["no known allergies"]

    await coordinator.start("conn-1", "s1", "u1")
    await coordinator.chunk("conn-1", b"audio")
    await coordinator.stop("conn-1")

    assert sql_repository.get("s1").transcript == "history: no known allergies"


def test_bootstrap_swaps_store_only_when_enabled(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "use_sql_repos", False)
    monkeypatch.setattr(repos, "session_record_repository", repos.session_record_repository)
    url = f"sqlite:///{tmp_path / 'boot.db'}"

    assert init_sql_repositories(url) is False
    assert not isinstance(repos.session_record_repository, SqlSessionRecordRepository)

    assert init_sql_repositories(url, force=True) is True
    assert isinstance(repos.session_record_repository, SqlSessionRecordRepository)
