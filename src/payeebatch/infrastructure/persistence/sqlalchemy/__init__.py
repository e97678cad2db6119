"""SQLAlchemy-backed relational store."""

from payeebatch.infrastructure.persistence.sqlalchemy.init_db import create_tables, drop_tables
from payeebatch.infrastructure.persistence.sqlalchemy.unit_of_work import SQLAlchemyUnitOfWork

__all__ = ["SQLAlchemyUnitOfWork", "create_tables", "drop_tables"]
