"""
Typed failures surfaced by :class:`~identity_service.services.registration.saga.RegistrationSaga`.

Every error records the saga step that failed, the underlying exception as
``__cause__`` and the compensation steps that could not be completed. The
HTTP mapping lives in ``RegistrationSaga.translate_exceptions``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from identity_service.services._shared.errors import ServiceError

if TYPE_CHECKING:
    from identity_service.services.registration.dto import RegistrationResult


class RegistrationErrorKind(str, Enum):
    """Failure category, one per saga phase."""

    VALIDATION = "VALIDATION"
    EXTERNAL_PROVIDER = "EXTERNAL_PROVIDER"
    PERSISTENCE = "PERSISTENCE"
    POST_REGISTRATION = "POST_REGISTRATION"
    PUBLISH = "PUBLISH"


@dataclass(frozen=True, slots=True)
class CompensationFailure:
    """
    A compensation step that raised while undoing a failed registration.

    :param step: Compensation step name (``domain_cleanup``, ``delete_local_records``,
        ``delete_external_identity``).
    :type step: str
    :param cause: Exception raised by the step.
    :type cause: BaseException
    """

    step: str
    cause: BaseException

    def __str__(self) -> str:
        return f"{self.step}: {type(self.cause).__name__}: {self.cause}"


class RegistrationError(ServiceError):
    """
    Base class for registration failures.

    :param message: Human-readable summary.
    :type message: str
    :param step: Saga step that failed.
    :type step: str
    :param cause: Underlying exception, stored as ``__cause__``.
    :type cause: BaseException | None
    """

    kind: ClassVar[RegistrationErrorKind]

    def __init__(self, message: str, *, step: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.compensation_failures: list[CompensationFailure] = []
        if cause is not None:
            self.__cause__ = cause

    @property
    def compensated(self) -> bool:
        """``True`` when every compensation step that ran succeeded."""
        return not self.compensation_failures

    def cause_chain(self) -> list[str]:
        """
        Render this error and its causes, outermost first.

        :returns: ``"<Type>: <message>"`` entries following ``__cause__``/``__context__``.
        :rtype: list[str]
        """
        chain: list[str] = []
        seen: set[int] = set()
        current: BaseException | None = self
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            chain.append(f"{type(current).__name__}: {current}")
            current = current.__cause__ or current.__context__
        return chain

    def __repr__(self) -> str:
        return f"{type(self).__name__}(step={self.step!r}, message={self.message!r})"


class ValidationError(RegistrationError):
    """
    The command was rejected before any side effect.

    :param rule: Identifier of the violated rule (e.g. ``password.min_length``).
    :type rule: str
    """

    kind = RegistrationErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        rule: str,
        step: str = "validate",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, step=step, cause=cause)
        self.rule = rule


class ExternalProviderError(RegistrationError):
    """The identity provider failed to create the account."""

    kind = RegistrationErrorKind.EXTERNAL_PROVIDER


class PersistenceError(RegistrationError):
    """
    Storing the local user or profile failed.

    :param conflict: ``True`` when a uniqueness rule (duplicate email,
        username or external id) caused the failure.
    :type conflict: bool
    """

    kind = RegistrationErrorKind.PERSISTENCE

    def __init__(
        self,
        message: str,
        *,
        step: str,
        cause: BaseException | None = None,
        conflict: bool = False,
    ) -> None:
        super().__init__(message, step=step, cause=cause)
        self.conflict = conflict


class PostRegistrationError(PersistenceError):
    """The domain post-registration hook failed after the records were committed."""

    kind = RegistrationErrorKind.POST_REGISTRATION


class PublishError(RegistrationError):
    """
    The registration committed but its event was not acknowledged.

    :param result: Committed registration, usable to retry publication.
    :type result: RegistrationResult
    """

    kind = RegistrationErrorKind.PUBLISH

    def __init__(
        self,
        message: str,
        *,
        result: RegistrationResult,
        step: str = "publish_event",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, step=step, cause=cause)
        self.result = result
