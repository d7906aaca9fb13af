"""Unit of Work contract shared by the writer and read-only implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from identity_service.repositories import ProfileRepository, UserRepository


class UnitOfWork(ABC):
    """
    One transaction spanning the ``users`` and ``profiles`` repositories.

    The registration saga opens one per persistence step: user and profile
    creation share a single scope, the post-registration hook and the
    compensating delete each get their own.
    """

    users: UserRepository
    profiles: ProfileRepository

    @abstractmethod
    def __enter__(self) -> UnitOfWork: ...

    @abstractmethod
    def __exit__(self, exc_type, exc, tb) -> None: ...

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...
