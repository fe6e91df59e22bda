"""Persistence for the audit trail."""

from closeflow.db.base import Base
from closeflow.db.session import make_engine, make_session_factory, init_db

__all__ = ["Base", "make_engine", "make_session_factory", "init_db"]
