"""Common base for application services that work through a Unit of Work."""

from __future__ import annotations

from identity_service.core import errors as api_errors
from identity_service.services._shared.errors import (
    ConflictError,
    NotFoundError,
    ServiceError,
)
from identity_service.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)


class BaseService:
    """
    Base class for application services.

    Services open a fresh Unit of Work per transactional step instead of
    touching the Flask-scoped session, and translate their own errors into
    API errors at the edge.
    """

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """Return a Unit of Work that commits on a clean exit."""
        return SQLAlchemyUnitOfWork()

    def ro_uow(self) -> SQLAlchemyReadOnlyUnitOfWork:
        """Return a Unit of Work that refuses writes and always rolls back."""
        return SQLAlchemyReadOnlyUnitOfWork()

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map a service error to the API error the HTTP layer raises.

        :param exc: Exception raised by the service.
        :type exc: Exception
        :returns: ``NotFound`` (404), ``Conflict`` (409), a 400 ``APIError``
            for other :class:`ServiceError` subclasses, or ``exc`` unchanged.
        :rtype: Exception
        """
        if isinstance(exc, NotFoundError):
            return api_errors.NotFound(str(exc))
        if isinstance(exc, ConflictError):
            return api_errors.Conflict(str(exc), details={"entity": exc.entity})
        if isinstance(exc, ServiceError):
            return api_errors.APIError(message=str(exc), status_code=400, code="bad_request")
        return exc
