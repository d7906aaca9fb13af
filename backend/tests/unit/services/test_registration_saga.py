"""Unit tests for RegistrationSaga orchestration and compensation."""

from __future__ import annotations

import pytest
from identity_service.models import Profile, User, UserStatus
from identity_service.repositories.profile import ProfileRepository
from identity_service.repositories.user import UserRepository
from identity_service.services._shared.errors import ConflictError, NotFoundError
from identity_service.services._shared.ports import IdentityProviderUnavailable
from identity_service.services.registration import (
    ExternalProviderError,
    PersistenceError,
    PostRegistrationError,
    PublishError,
    RegistrationCommand,
    RegistrationErrorKind,
    StepOutcome,
    ValidationError,
)
from identity_service.services.registration.domains import get_domain
from identity_service.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork
from sqlalchemy.exc import IntegrityError, OperationalError

from tests.factories.profile import CustomerProfileFactory
from tests.helpers.doubles import ScriptedDomain


def _command(**overrides) -> RegistrationCommand:
    data = {
        "email": "a@b.com",
        "password": "password1",
        "first_name": "A",
        "last_name": "B",
    }
    data.update(overrides)
    return RegistrationCommand(**data)


def _users(session) -> int:
    return session.query(User).count()


def _profiles(session) -> int:
    return session.query(Profile).count()


class TestValidationStep:
    @pytest.mark.parametrize(
        ("email", "password", "rule"),
        [
            ("", "password1", "email.required"),
            ("   ", "password1", "email.required"),
            ("not-an-email", "password1", "email.format"),
            ("a@localhost", "password1", "email.format"),
            ("@example.com", "password1", "email.format"),
            ("a@b.com", "short", "password.min_length"),
            ("a@b.com", "", "password.min_length"),
        ],
    )
    def test_invalid_command_has_no_side_effects(
        self, make_saga, idp, publisher, session, email, password, rule
    ):
        """
        GIVEN a missing or malformed email, or a password shorter than 8 characters
        WHEN the saga executes
        THEN it fails with ValidationError and never touches provider, store or publisher.
        """
        domain = ScriptedDomain()
        saga = make_saga(domain=domain)

        with pytest.raises(ValidationError) as excinfo:
            saga.execute(_command(email=email, password=password))

        assert excinfo.value.rule == rule
        assert excinfo.value.kind is RegistrationErrorKind.VALIDATION
        assert excinfo.value.step == "validate"
        assert idp.create_calls == []
        assert idp.delete_calls == []
        assert publisher.attempts == 0
        assert _users(session) == 0
        assert "build_user" not in domain.calls

    def test_domain_rules_are_checked(self, make_saga, idp, session):
        saga = make_saga(domain=get_domain("patient"))

        with pytest.raises(ValidationError) as excinfo:
            saga.execute(_command())

        assert excinfo.value.rule == "date_of_birth.required"
        assert idp.create_calls == []

    def test_unexpected_domain_exception_becomes_validation_error(self, make_saga, idp):
        saga = make_saga(domain=ScriptedDomain(fail_on={"validate"}))

        with pytest.raises(ValidationError) as excinfo:
            saga.execute(_command())

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert idp.create_calls == []


class TestExternalIdentityStep:
    def test_provider_failure_leaves_nothing_behind(self, make_saga, idp, publisher, session):
        """
        GIVEN a provider that fails to create the account
        WHEN the saga executes
        THEN ExternalProviderError is raised and no User or Profile exists.
        """
        idp.fail_create = True
        saga = make_saga()

        with pytest.raises(ExternalProviderError) as excinfo:
            saga.execute(_command())

        err = excinfo.value
        assert err.step == "create_external_identity"
        assert isinstance(err.__cause__, IdentityProviderUnavailable)
        assert idp.delete_calls == []
        assert publisher.attempts == 0
        assert _users(session) == 0
        assert _profiles(session) == 0

    def test_metadata_comes_from_domain(self, make_saga, idp):
        make_saga().execute(_command(phone_number="+100"))

        _, metadata = idp.create_calls[0]
        assert metadata == {
            "domain": "customer",
            "first_name": "A",
            "last_name": "B",
            "phone_number": "+100",
        }


class TestLocalPersistenceSteps:
    def test_user_failure_deletes_external_identity_once(self, make_saga, idp, session):
        """
        GIVEN a domain whose user construction fails
        WHEN the saga executes
        THEN PersistenceError is raised and the created account is deleted exactly once.
        """
        domain = ScriptedDomain(fail_on={"build_user"})

        with pytest.raises(PersistenceError) as excinfo:
            make_saga(domain=domain).execute(_command())

        assert excinfo.value.step == "create_user"
        assert excinfo.value.conflict is False
        assert idp.delete_calls == idp.created_ids
        assert len(idp.delete_calls) == 1
        assert not idp.has_account(idp.created_ids[0])
        assert "cleanup" not in domain.calls
        assert _users(session) == 0

    def test_profile_failure_rolls_back_user_and_deletes_identity(
        self, make_saga, idp, publisher, session
    ):
        """
        GIVEN a domain whose profile construction fails after the user was flushed
        WHEN the saga executes
        THEN the user is rolled back, domain cleanup runs and the account is deleted.
        """
        domain = ScriptedDomain(fail_on={"build_profile"})

        with pytest.raises(PersistenceError) as excinfo:
            make_saga(domain=domain).execute(_command())

        assert excinfo.value.step == "create_profile"
        assert domain.calls["cleanup"] == 1
        assert idp.delete_calls == idp.created_ids
        assert _users(session) == 0
        assert _profiles(session) == 0
        assert publisher.attempts == 0

    def test_profile_insert_failure_after_user_flush_is_compensated(
        self, make_saga, idp, publisher, session, monkeypatch
    ):
        """
        GIVEN a profile insert that fails after the user row was flushed
        WHEN the saga executes
        THEN the transaction is rolled back, cleanup runs once and the account is deleted once.
        """

        def failing_add(self, entity):
            raise IntegrityError("INSERT INTO profiles", {}, Exception("disk full"))

        monkeypatch.setattr(ProfileRepository, "add", failing_add)
        domain = ScriptedDomain()

        with pytest.raises(PersistenceError) as excinfo:
            make_saga(domain=domain).execute(_command())

        err = excinfo.value
        assert err.step == "create_profile"
        assert err.conflict is False
        assert isinstance(err.__cause__, IntegrityError)
        assert domain.calls["build_user"] == 1
        assert domain.calls["cleanup"] == 1
        assert len(idp.delete_calls) == 1
        assert idp.delete_calls == idp.created_ids
        assert _users(session) == 0
        assert _profiles(session) == 0
        assert publisher.attempts == 0

    def test_commit_failure_is_compensated(self, make_saga, idp, publisher, session, monkeypatch):
        """
        GIVEN user and profile rows that were flushed but cannot be committed
        WHEN the Unit of Work commits
        THEN PersistenceError is raised, nothing is stored and the account is deleted once.
        """

        def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("connection lost"))

        monkeypatch.setattr(SQLAlchemyUnitOfWork, "commit", failing_commit)
        domain = ScriptedDomain()

        with pytest.raises(PersistenceError) as excinfo:
            make_saga(domain=domain).execute(_command())

        err = excinfo.value
        assert err.step == "create_profile"
        assert isinstance(err.__cause__, OperationalError)
        assert domain.calls["build_profile"] == 1
        assert domain.calls["cleanup"] == 1
        assert "post_register" not in domain.calls
        assert len(idp.delete_calls) == 1
        assert idp.delete_calls == idp.created_ids
        assert _users(session) == 0
        assert _profiles(session) == 0
        assert publisher.attempts == 0

    def test_unique_constraint_violation_is_reported_as_conflict(
        self, make_saga, idp, session, monkeypatch
    ):
        """
        GIVEN a duplicate email that slips past the existence check
        WHEN the insert hits the unique constraint
        THEN the failure is a conflict and only the new account is deleted.
        """
        saga = make_saga()
        first = saga.execute(_command())
        monkeypatch.setattr(UserRepository, "exists_by_email", lambda self, email: False)

        with pytest.raises(PersistenceError) as excinfo:
            saga.execute(_command())

        assert excinfo.value.conflict is True
        assert excinfo.value.step == "create_user"
        assert idp.delete_calls == [idp.created_ids[1]]
        assert session.get(User, first.user_id) is not None


class TestPostRegistrationStep:
    def test_hook_failure_deletes_committed_records(self, make_saga, idp, publisher, session):
        domain = ScriptedDomain(fail_on={"post_register"})

        with pytest.raises(PostRegistrationError) as excinfo:
            make_saga(domain=domain).execute(_command())

        err = excinfo.value
        assert isinstance(err, PersistenceError)
        assert err.kind is RegistrationErrorKind.POST_REGISTRATION
        assert err.compensation_failures == []
        assert domain.calls["cleanup"] == 1
        assert idp.delete_calls == idp.created_ids
        assert _users(session) == 0
        assert _profiles(session) == 0
        assert publisher.attempts == 0

    def test_customer_hook_activates_user(self, make_saga, session):
        result = make_saga().execute(_command())

        assert session.get(User, result.user_id).status is UserStatus.ACTIVE

    def test_patient_stays_pending(self, make_saga, session):
        result = make_saga(domain=get_domain("patient")).execute(
            _command(additional_data={"date_of_birth": "1990-05-01"})
        )

        user = session.get(User, result.user_id)
        profile = session.get(Profile, result.profile_id)
        assert result.profile_type == "PATIENT"
        assert user.status is UserStatus.PENDING
        assert profile.requires_verification is True
        assert profile.get_attribute("date_of_birth") == "1990-05-01"
        assert profile.has_permission("records:read-own")


class TestPublishStep:
    def test_publish_failure_keeps_committed_state(self, make_saga, idp, publisher, session):
        """
        GIVEN a publisher that does not acknowledge
        WHEN the saga executes
        THEN PublishError carries the result and nothing is compensated.
        """
        publisher.fail = True

        with pytest.raises(PublishError) as excinfo:
            make_saga().execute(_command())

        err = excinfo.value
        assert err.kind is RegistrationErrorKind.PUBLISH
        assert err.compensation_failures == []
        assert session.get(User, err.result.user_id) is not None
        assert session.get(Profile, err.result.profile_id) is not None
        assert idp.has_account(err.result.external_id)
        assert idp.delete_calls == []
        assert publisher.attempts == 1

    def test_republish_after_failure(self, make_saga, publisher):
        publisher.fail = True
        saga = make_saga()
        with pytest.raises(PublishError) as excinfo:
            saga.execute(_command())

        publisher.fail = False
        result = saga.republish(excinfo.value.result.user_id)

        assert result == excinfo.value.result
        [payload] = publisher.events_for("registration-events")
        assert payload["user_id"] == result.user_id
        assert payload["profile_id"] == result.profile_id

    def test_republish_reads_stored_records(self, make_saga, publisher):
        profile = CustomerProfileFactory.create_committed()

        result = make_saga().republish(profile.user_id)

        assert result.profile_id == profile.id
        assert result.external_id == profile.user.external_id
        [payload] = publisher.events_for("registration-events")
        assert payload["email"] == profile.user.email

    def test_republish_unknown_user(self, make_saga):
        with pytest.raises(NotFoundError):
            make_saga().republish(999_999)


class TestHappyPath:
    def test_registers_and_publishes_one_event(self, make_saga, idp, publisher, session):
        """
        GIVEN a valid command for the customer domain
        WHEN the saga executes
        THEN it returns a successful result and emits exactly one unkeyed event.
        """
        result = make_saga().execute(_command())

        assert result.success is True
        assert result.profile_type == "CUSTOMER"
        assert result.external_id == idp.created_ids[0]

        [(topic, key, payload)] = publisher.published
        assert topic == "registration-events"
        assert key is None
        assert payload["user_id"] == result.user_id
        assert payload["profile_id"] == result.profile_id
        assert payload["profile_type"] == "CUSTOMER"
        assert payload["email"] == "a@b.com"

        user = session.get(User, result.user_id)
        assert user.external_id == result.external_id
        assert user.username == "a@b.com"
        assert user.user_type == "customer"
        profile = session.get(Profile, result.profile_id)
        assert profile.user_id == user.id
        assert set(profile.permissions) == {"orders:create"}
        assert profile.get_attribute("loyalty_tier") == "basic"

    def test_custom_topic(self, make_saga, publisher):
        make_saga(topic="identity.registrations").execute(_command())

        assert [t for t, _, _ in publisher.published] == ["identity.registrations"]

    def test_saga_keeps_no_per_call_state(self, make_saga):
        saga = make_saga()
        before = dict(vars(saga))

        saga.execute(_command(email="one@example.com"))
        saga.execute(_command(email="two@example.com"))

        assert vars(saga) == before


class TestDuplicateRegistration:
    def test_second_registration_with_same_email_is_compensated(
        self, make_saga, idp, publisher, session
    ):
        """
        GIVEN a committed registration for an email
        WHEN the same email registers again (different case)
        THEN PersistenceError is raised, the second account is deleted once
        and the first registration is intact.
        """
        saga = make_saga()
        first = saga.execute(_command())

        with pytest.raises(PersistenceError) as excinfo:
            saga.execute(_command(email="A@B.com"))

        assert excinfo.value.conflict is True
        assert len(idp.created_ids) == 2
        assert idp.delete_calls == [idp.created_ids[1]]
        assert idp.has_account(first.external_id)
        assert _users(session) == 1
        assert session.get(User, first.user_id).external_id == first.external_id
        assert len(publisher.published) == 1


class TestCompensationFailures:
    def test_failures_are_recorded_not_raised(self, make_saga, idp):
        idp.fail_delete = True
        domain = ScriptedDomain(fail_on={"build_profile", "cleanup"})

        with pytest.raises(PersistenceError) as excinfo:
            make_saga(domain=domain).execute(_command())

        err = excinfo.value
        assert [f.step for f in err.compensation_failures] == [
            "domain_cleanup",
            "delete_external_identity",
        ]
        assert isinstance(err.compensation_failures[1].cause, IdentityProviderUnavailable)
        assert err.compensated is False
        # The delete was still attempted after cleanup failed.
        assert len(idp.delete_calls) == 1
        assert "RuntimeError: build_profile exploded" in err.cause_chain()


class TestStepOutcome:
    def test_success_and_failure(self):
        ok = StepOutcome.success("create_user", 42)
        failed = StepOutcome.failure("create_user", PersistenceError("x", step="create_user"))

        assert ok.ok and ok.value == 42 and ok.error is None
        assert not failed.ok and failed.value is None


class TestTranslateExceptions:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (ValidationError("bad", rule="email.required"), 422),
            (ExternalProviderError("down", step="create_external_identity"), 502),
            (PersistenceError("dup", step="create_user", conflict=True), 409),
            (PersistenceError("disk", step="create_profile"), 500),
            (PostRegistrationError("hook", step="post_register"), 500),
            (NotFoundError("User", 1), 404),
            (ConflictError("User", "email taken"), 409),
        ],
    )
    def test_status_mapping(self, make_saga, error, status):
        assert make_saga().translate_exceptions(error).status_code == status

    def test_unknown_exceptions_pass_through(self, make_saga):
        exc = KeyError("x")
        assert make_saga().translate_exceptions(exc) is exc
