"""
Database engine, session factory and declarative base.

The URL comes from DATABASE_URL. SQLite is used for local development and
tests, PostgreSQL in deployments.
"""

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./task_manager.db")

# SQLite connections are shared across FastAPI's threadpool workers
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

logger.debug(f"Database engine configured for dialect: {engine.dialect.name}")


def get_db():
    """Yield a request-scoped session and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
