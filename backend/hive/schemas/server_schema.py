"""
schemas/server_schema.py — Marshmallow schemas for server and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    and which roles may be requested.
  - services/: anything needing a DB lookup (SERVER_NOT_FOUND,
    MEMBER_NOT_FOUND, ALREADY_MEMBER, ownership checks).

Schemas inherit from marshmallow.Schema so unit tests can instantiate them
without an app context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from hive.errors import ErrorCode
from hive.models.membership import MemberRole


def _validate_non_empty_after_trim(value: str) -> None:
    """
    validate.Length(min=1) alone lets "   " through. Mirrors the DB
    CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_name_field = dict(
    validate=[
        validate.Length(
            min=1,
            max=100,
            error="Server name must be between 1 and 100 characters.",
        ),
        _validate_non_empty_after_trim,
    ],
)


class CreateServerSchema(Schema):
    """POST /servers"""

    name = fields.Str(required=True, **_name_field)
    description = fields.Str(
        load_default="",
        validate=validate.Length(max=500),
    )
    image_url = fields.Url(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )
    is_public = fields.Bool(load_default=True)


class UpdateServerSchema(Schema):
    """
    PATCH /servers/:id

    Every field is optional but at least one must be present.
    owner_id is deliberately absent: ownership never transfers.
    """

    name = fields.Str(**_name_field)
    description = fields.Str(validate=validate.Length(max=500))
    image_url = fields.Url(allow_none=True, validate=validate.Length(max=500))
    is_public = fields.Bool()

    @validates_schema
    def require_one_field(self, data, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one field to update.")


class SetRoleSchema(Schema):
    """
    PATCH /servers/:id/members/:uid

    Any known role name passes; unknown names are INVALID_ROLE. Whether the
    role may be handed out (owner never can) is decided by
    membership_service.set_role after the ownership checks.
    """

    role = fields.Str(
        required=True,
        validate=validate.OneOf(
            [r.value for r in MemberRole],
            error=ErrorCode.INVALID_ROLE,
        ),
    )
