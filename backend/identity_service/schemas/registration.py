"""Registration Marshmallow schemas."""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate


class RegistrationSchema(Schema):
    """Input payload for a registration.

    Unknown top-level keys are dropped; domain fields go in ``additional_data``.
    """

    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(
        required=True, load_only=True, validate=validate.Length(min=8, max=128)
    )
    first_name = fields.String(load_default=None, validate=validate.Length(max=100))
    last_name = fields.String(load_default=None, validate=validate.Length(max=100))
    phone_number = fields.String(load_default=None, validate=validate.Length(max=32))
    additional_data = fields.Dict(keys=fields.String(), load_default=dict)


class RegistrationResultSchema(Schema):
    """Response payload describing a committed registration."""

    user_id = fields.Integer(required=True)
    profile_id = fields.Integer(required=True)
    external_id = fields.String(required=True)
    profile_type = fields.String(required=True)
    success = fields.Boolean(required=True)
