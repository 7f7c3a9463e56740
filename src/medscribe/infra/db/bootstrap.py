from __future__ import annotations

import logging
from typing import Optional

from src.medscribe.config import settings
from src.medscribe.infra.db.models import Base
from src.medscribe.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.medscribe.infra.db.sql_sessions import SqlSessionRecordRepository
from src.medscribe.infra.db import inmemory as inmemory_repos

logger = logging.getLogger("medscribe.db")


def init_sql_repositories(database_url: Optional[str] = None, *, force: bool = False) -> bool:
    """Optionally switch the in-memory session store to a SQL-backed one.

    Called from application startup. Unless ``force`` is set, this is a no-op
    when USE_SQL_REPOS is not enabled or no database URL is configured, and
    the in-memory repository remains active. Returns True when the swap
    happened.
    """

    if not (settings.use_sql_repos or force):
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory store")
        return False

    engine = create_sqlalchemy_engine(db_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations.
    Base.metadata.create_all(engine)

    # Consumers resolve the repository through the inmemory module at call
    # time, so rebinding the module attribute switches every caller.
    inmemory_repos.session_record_repository = SqlSessionRecordRepository(
        create_sqlalchemy_session_factory(engine)
    )
    logger.info("SQL session repository enabled")
    return True
