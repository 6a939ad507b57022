from __future__ import annotations

import logging
from typing import Optional, Tuple

from src.medinote.config import Settings
from src.medinote.infra.db.models import Base
from src.medinote.infra.db.repositories import PatientRepository, SessionRepository
from src.medinote.infra.db.session import create_db_engine, create_sqlalchemy_session_factory
from src.medinote.infra.db.sql_patients import SqlPatientRepository
from src.medinote.infra.db.sql_sessions import SqlSessionRepository

logger = logging.getLogger(__name__)


def init_sql_repositories(
    settings: Settings,
    database_url: Optional[str] = None,
) -> Optional[Tuple[SessionRepository, PatientRepository]]:
    """Build SQL-backed session and patient repositories when configured.

    Returns None (so the caller keeps the in-memory repositories) unless
    USE_SQL_REPOS is enabled and a database URL is available.
    """

    if not settings.use_sql_repos:
        return None

    db_url = database_url or settings.database_url
    if not db_url:
        # Misconfigured: requested SQL repos but no database URL. Leave
        # in-memory repos in place.
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; using in-memory repositories")
        return None

    engine = create_db_engine(db_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations, but this is convenient for early MVP setups.
    Base.metadata.create_all(engine)

    session_factory = create_sqlalchemy_session_factory(engine)
    return SqlSessionRepository(session_factory), SqlPatientRepository(session_factory)
