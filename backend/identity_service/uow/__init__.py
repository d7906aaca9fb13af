"""Unit of Work abstractions and their SQLAlchemy implementations."""

from .base import UnitOfWork
from .sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyRepositoryContainer,
    SQLAlchemyUnitOfWork,
)

__all__ = [
    "UnitOfWork",
    "SQLAlchemyRepositoryContainer",
    "SQLAlchemyUnitOfWork",
    "SQLAlchemyReadOnlyUnitOfWork",
]
