"""
RegistrationSaga
================

Provisions a new identity in six steps:

1. Validate the command (core rules, then domain rules).
2. Create the account at the identity provider.
3. Create the local ``User``.
4. Create the ``Profile`` (steps 3 and 4 share one transaction).
5. Run the domain post-registration hook.
6. Publish a :class:`RegistrationEvent`.

Every step yields a :class:`StepOutcome`; ``execute`` inspects it to decide
whether to continue or to compensate. Compensation undoes completed steps in
reverse order (domain cleanup, committed local rows, provider account), is
best-effort, and records its own failures on the surfaced error instead of
raising them. A publish failure is not compensated: the registration stays
committed and the error carries the result so publication can be retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy.exc import IntegrityError

from identity_service.core import errors as api_errors
from identity_service.models.profile import Profile
from identity_service.models.user import User, normalize_email
from identity_service.services._shared.base import BaseService
from identity_service.services._shared.errors import NotFoundError, violates
from identity_service.services._shared.ports import EventPublisher, IdentityProviderGateway
from identity_service.services.registration.dto import (
    RegistrationCommand,
    RegistrationEvent,
    RegistrationResult,
)
from identity_service.services.registration.errors import (
    CompensationFailure,
    ExternalProviderError,
    PersistenceError,
    PostRegistrationError,
    PublishError,
    RegistrationError,
    ValidationError,
)

if TYPE_CHECKING:
    from identity_service.services.registration.domains import RegistrationDomain
    from identity_service.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TOPIC = "registration-events"
MIN_PASSWORD_LENGTH = 8

# Step names, also used as the ``saga_step`` log field.
VALIDATE = "validate"
CREATE_EXTERNAL_IDENTITY = "create_external_identity"
CREATE_USER = "create_user"
CREATE_PROFILE = "create_profile"
POST_REGISTER = "post_register"
PUBLISH_EVENT = "publish_event"

# Compensation step names.
DOMAIN_CLEANUP = "domain_cleanup"
DELETE_LOCAL_RECORDS = "delete_local_records"
DELETE_EXTERNAL_IDENTITY = "delete_external_identity"

# Unique constraints that make a failed insert a conflict rather than a fault.
_UNIQUE_RULES = (
    "uq_users_email",
    "uq_users_username",
    "uq_users_external_id",
    "users.email",
    "users.username",
    "users.external_id",
)


@dataclass(frozen=True, slots=True)
class StepOutcome(Generic[T]):
    """
    Result of one saga step: a value on success, a typed error on failure.

    :param step: Step name.
    :type step: str
    :param value: Value produced by the step when it succeeded.
    :type value: T | None
    :param error: Failure when the step did not succeed.
    :type error: RegistrationError | None
    """

    step: str
    value: T | None = None
    error: RegistrationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, step: str, value: T) -> StepOutcome[T]:
        return cls(step=step, value=value)

    @classmethod
    def failure(cls, step: str, error: RegistrationError) -> StepOutcome[T]:
        return cls(step=step, error=error)


@dataclass(slots=True)
class _SagaState:
    """Per-call progress used to plan compensation."""

    command: RegistrationCommand
    external_id: str | None = None
    user_id: int | None = None
    profile_id: int | None = None
    email: str | None = None
    user_built: bool = False
    records_committed: bool = False


class _AbortUnitOfWork(Exception):
    """Leaves the persistence Unit of Work so it rolls back, carrying the failed outcome."""

    def __init__(self, outcome: StepOutcome[Any]) -> None:
        super().__init__(outcome.step)
        self.outcome = outcome


ErrorFactory = Callable[[str, Exception], RegistrationError]


def _validation_error(step: str, exc: Exception) -> RegistrationError:
    return ValidationError(str(exc) or "Invalid registration.", rule="domain", cause=exc)


def _provider_error(step: str, exc: Exception) -> RegistrationError:
    return ExternalProviderError(
        f"Identity provider could not create the account: {exc}", step=step, cause=exc
    )


def _persistence_error(step: str, exc: Exception) -> RegistrationError:
    conflict = isinstance(exc, IntegrityError) and any(violates(exc, c) for c in _UNIQUE_RULES)
    what = "user" if step == CREATE_USER else "profile"
    return PersistenceError(
        f"Could not store the {what}: {exc}", step=step, cause=exc, conflict=conflict
    )


def _post_registration_error(step: str, exc: Exception) -> RegistrationError:
    return PostRegistrationError(
        f"Post-registration hook failed: {exc}", step=step, cause=exc
    )


class RegistrationSaga(BaseService):
    """
    Orchestrates a registration across the identity provider, the local store
    and the event stream for one deployed domain.

    The saga keeps no per-call state on ``self``; one instance can serve
    concurrent callers.

    :param domain: Registration domain supplying the domain hooks.
    :type domain: RegistrationDomain
    :param identity_provider: Gateway to the external identity provider.
    :type identity_provider: IdentityProviderGateway
    :param publisher: Event publisher for the registration topic.
    :type publisher: EventPublisher
    :param topic: Topic receiving :class:`RegistrationEvent` messages.
    :type topic: str
    """

    def __init__(
        self,
        *,
        domain: RegistrationDomain,
        identity_provider: IdentityProviderGateway,
        publisher: EventPublisher,
        topic: str = DEFAULT_TOPIC,
    ) -> None:
        self.domain = domain
        self.identity_provider = identity_provider
        self.publisher = publisher
        self.topic = topic

    # ------------------------------------------------------------------ #
    # Use case
    # ------------------------------------------------------------------ #

    def execute(self, command: RegistrationCommand) -> RegistrationResult:
        """
        Register the identity described by ``command``.

        :param command: Registration input.
        :type command: RegistrationCommand
        :returns: Committed registration.
        :rtype: RegistrationResult
        :raises ValidationError: Command rejected; nothing was created.
        :raises ExternalProviderError: Provider account not created; nothing to undo.
        :raises PersistenceError: Local user or profile not stored; provider account removed.
        :raises PostRegistrationError: Domain hook failed; local rows and provider account removed.
        :raises PublishError: Event not acknowledged; the registration remains committed.
        """
        state = _SagaState(command=command)

        outcome: StepOutcome[Any] = self._run_step(
            VALIDATE, _validation_error, self._validate, command
        )
        if not outcome.ok:
            raise self._failed(outcome)

        outcome = self._run_step(
            CREATE_EXTERNAL_IDENTITY, _provider_error, self._create_external_identity, state
        )
        if not outcome.ok:
            raise self._failed(outcome)
        state.external_id = outcome.value

        outcome = self._persist_local_records(state)
        if not outcome.ok:
            raise self._compensate(state, outcome)

        outcome = self._run_step(
            POST_REGISTER, _post_registration_error, self._post_register, state
        )
        if not outcome.ok:
            raise self._compensate(state, outcome)

        result = RegistrationResult(
            user_id=state.user_id,
            profile_id=state.profile_id,
            external_id=state.external_id,
            profile_type=self.domain.profile_type,
        )
        self._publish_or_raise(result, state.email)
        log.info(
            "Registration completed for user_id=%s",
            result.user_id,
            extra={"profile_type": result.profile_type, "external_id": result.external_id},
        )
        return result

    def republish(self, user_id: int) -> RegistrationResult:
        """
        Publish the registration event again for a committed user.

        Used to retry after a :class:`PublishError`.

        :param user_id: Local user identifier.
        :type user_id: int
        :returns: The registration the event describes.
        :rtype: RegistrationResult
        :raises NotFoundError: If the user or its profile does not exist.
        :raises PublishError: If the event is not acknowledged.
        """
        with self.ro_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            profile = uow.profiles.get_by_user_id(user.id)
            if profile is None:
                raise NotFoundError("Profile", f"user_id={user_id}")
            result = RegistrationResult(
                user_id=user.id,
                profile_id=profile.id,
                external_id=user.external_id or "",
                profile_type=profile.profile_type,
            )
            email = user.email
        self._publish_or_raise(result, email)
        return result

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def _run_step(
        self,
        step: str,
        error_factory: ErrorFactory,
        fn: Callable[..., T],
        *args: Any,
    ) -> StepOutcome[T]:
        """Run ``fn`` and turn its return value or exception into an outcome."""
        log.debug("Registration step started", extra={"saga_step": step})
        try:
            value = fn(*args)
        except RegistrationError as err:
            return StepOutcome.failure(step, err)
        except Exception as exc:
            return StepOutcome.failure(step, error_factory(step, exc))
        log.debug("Registration step succeeded", extra={"saga_step": step})
        return StepOutcome.success(step, value)

    def _validate(self, command: RegistrationCommand) -> None:
        if not command.email or not command.email.strip():
            raise ValidationError("Email is required.", rule="email.required")
        try:
            normalize_email(command.email)
        except ValueError as exc:
            raise ValidationError(str(exc), rule="email.format", cause=exc) from exc
        if not command.password or len(command.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                rule="password.min_length",
            )
        self.domain.validate(command)

    def _create_external_identity(self, state: _SagaState) -> str:
        command = state.command
        metadata = self.domain.build_metadata(command)
        external_id = self.identity_provider.create_account(
            command.email.strip(), command.password, metadata
        )
        if not external_id:
            raise ExternalProviderError(
                "Identity provider returned an empty account id.", step=CREATE_EXTERNAL_IDENTITY
            )
        log.info(
            "External identity created",
            extra={"saga_step": CREATE_EXTERNAL_IDENTITY, "external_id": external_id},
        )
        return external_id

    def _persist_local_records(self, state: _SagaState) -> StepOutcome[Profile]:
        """Create the user and the profile in one transaction (steps 3 and 4)."""
        try:
            with self.rw_uow() as uow:
                user_outcome = self._run_step(
                    CREATE_USER, _persistence_error, self._create_user, uow, state
                )
                if not user_outcome.ok:
                    raise _AbortUnitOfWork(user_outcome)
                profile_outcome = self._run_step(
                    CREATE_PROFILE,
                    _persistence_error,
                    self._create_profile,
                    uow,
                    state,
                    user_outcome.value,
                )
                if not profile_outcome.ok:
                    raise _AbortUnitOfWork(profile_outcome)
        except _AbortUnitOfWork as aborted:
            return aborted.outcome
        except Exception as exc:
            # Commit failed; the Unit of Work already rolled back.
            return StepOutcome.failure(CREATE_PROFILE, _persistence_error(CREATE_PROFILE, exc))
        state.records_committed = True
        return profile_outcome

    def _create_user(self, uow: SQLAlchemyUnitOfWork, state: _SagaState) -> User:
        command = state.command
        if uow.users.exists_by_email(command.email):
            raise PersistenceError(
                f"A user with email {command.email.strip().lower()!r} already exists.",
                step=CREATE_USER,
                conflict=True,
            )
        user = self.domain.build_user(command, state.external_id)
        state.user_built = True
        uow.users.add(user)
        state.user_id = user.id
        state.email = user.email
        return user

    def _create_profile(
        self, uow: SQLAlchemyUnitOfWork, state: _SagaState, user: User
    ) -> Profile:
        profile = self.domain.build_profile(state.command, user)
        uow.profiles.add(profile)
        state.profile_id = profile.id
        return profile

    def _post_register(self, state: _SagaState) -> None:
        with self.rw_uow() as uow:
            profile = uow.profiles.get(state.profile_id)
            if profile is None:
                raise NotFoundError("Profile", state.profile_id)
            self.domain.post_register(profile)

    def _publish_or_raise(self, result: RegistrationResult, email: str | None) -> None:
        event = RegistrationEvent(
            user_id=result.user_id,
            profile_id=result.profile_id,
            profile_type=result.profile_type,
            email=email or "",
        )

        def publish_failed(step: str, exc: Exception) -> RegistrationError:
            return PublishError(
                f"Registration event was not published: {exc}",
                result=result,
                step=step,
                cause=exc,
            )

        outcome = self._run_step(
            PUBLISH_EVENT, publish_failed, self.publisher.publish, self.topic, event
        )
        if not outcome.ok:
            # Committed state is kept; callers retry with republish().
            raise self._failed(outcome)

    # ------------------------------------------------------------------ #
    # Failure handling
    # ------------------------------------------------------------------ #

    def _failed(self, outcome: StepOutcome[Any]) -> RegistrationError:
        error = outcome.error
        assert error is not None
        log.warning(
            "Registration failed at %s: %s",
            outcome.step,
            error.message,
            extra={"saga_step": outcome.step},
        )
        return error

    def _compensate(self, state: _SagaState, outcome: StepOutcome[Any]) -> RegistrationError:
        """
        Undo completed steps in reverse order and return the original error.

        Each compensation runs even if an earlier one failed; failures are
        attached to the error as :class:`CompensationFailure` entries.
        """
        error = self._failed(outcome)
        cause: BaseException = error.__cause__ or error

        plan: list[tuple[str, Callable[[], None]]] = []
        if state.user_built:
            plan.append((DOMAIN_CLEANUP, lambda: self.domain.cleanup(state.command, cause)))
        if state.records_committed:
            plan.append((DELETE_LOCAL_RECORDS, lambda: self._delete_local_records(state)))
        if state.external_id:
            plan.append(
                (
                    DELETE_EXTERNAL_IDENTITY,
                    lambda: self.identity_provider.delete_account(state.external_id),
                )
            )

        for step, action in plan:
            try:
                action()
            except Exception as exc:
                error.compensation_failures.append(CompensationFailure(step=step, cause=exc))
                log.error(
                    "Compensation step %s failed",
                    step,
                    exc_info=True,
                    extra={"saga_step": step, "external_id": state.external_id},
                )
            else:
                log.info(
                    "Compensation step %s completed",
                    step,
                    extra={"saga_step": step, "external_id": state.external_id},
                )
        return error

    def _delete_local_records(self, state: _SagaState) -> None:
        with self.rw_uow() as uow:
            if state.profile_id is not None:
                profile = uow.profiles.get(state.profile_id)
                if profile is not None:
                    uow.profiles.delete(profile)
            if state.user_id is not None:
                user = uow.users.get(state.user_id)
                if user is not None:
                    uow.users.delete(user)

    # ------------------------------------------------------------------ #
    # API translation
    # ------------------------------------------------------------------ #

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map registration errors to API errors.

        Validation → 422, provider → 502, conflicts → 409, other persistence
        and publish failures → 500. Other errors use the base mapping.
        """
        if isinstance(exc, ValidationError):
            return api_errors.UnprocessableEntity(exc.message, details={"rule": exc.rule})

        if isinstance(exc, ExternalProviderError):
            return api_errors.BadGateway(exc.message, details={"step": exc.step})

        if isinstance(exc, PersistenceError) and exc.conflict:
            return api_errors.Conflict(exc.message, details={"step": exc.step})

        if isinstance(exc, RegistrationError):
            details: dict[str, Any] = {"step": exc.step, "kind": exc.kind.value}
            if exc.compensation_failures:
                details["compensation_failures"] = [
                    str(f) for f in exc.compensation_failures
                ]
            return api_errors.APIError(
                message="Registration could not be completed.",
                status_code=500,
                code="registration_failed",
                details=details,
            )

        return super().translate_exceptions(exc)
