"""
Database session management.

Provides the session factory used by the conversation store.
"""

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Build a session factory bound to ``engine``.

    Objects stay readable after commit so the store can hand ORM rows back
    to async callers once their session is closed.
    """
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
