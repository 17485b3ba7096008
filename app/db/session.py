from __future__ import annotations

from typing import Any, Dict

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings


def engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # sync routes run on threadpool workers, not the creating thread
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


settings = get_settings()

# required setting: a missing DATABASE_URL fails at import
engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db(request: Request):
    # tests hand create_app their own factory
    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    db = factory()
    try:
        yield db
    finally:
        db.close()
