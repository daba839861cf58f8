"""Database session management for the draft store"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bms_capital.config import settings
from bms_capital.infrastructure.storage.models import Base


def create_session_factory(database_url: str | None = None) -> sessionmaker:
    """Build a session factory and make sure the kv_entry table exists"""
    url = database_url or settings.draft_store_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
