"""Registration endpoint."""

from __future__ import annotations

from flask import Blueprint, request

from identity_service.api.deps import json_response, timing
from identity_service.core.extensions import get_registration_saga
from identity_service.schemas import RegistrationResultSchema, RegistrationSchema
from identity_service.services.registration import (
    PublishError,
    RegistrationCommand,
    RegistrationError,
)

bp = Blueprint("registrations", __name__)

registration_schema = RegistrationSchema()
result_schema = RegistrationResultSchema()


@bp.post("")
@timing
def create_registration():
    """Register a new identity for the configured domain.

    Returns ``201`` with the result, or ``202`` when the registration is
    committed but its event could not be published.
    """

    payload = registration_schema.load(request.get_json(silent=True) or {})
    command = RegistrationCommand(**payload)
    saga = get_registration_saga()
    try:
        result = saga.execute(command)
    except PublishError as exc:
        body = {
            "data": result_schema.dump(exc.result),
            "warning": "Registration stored but its event was not published.",
        }
        return json_response(body, status=202)
    except RegistrationError as exc:
        raise saga.translate_exceptions(exc) from exc
    return json_response({"data": result_schema.dump(result)}, status=201)
