"""
schemas/message_schema.py — Marshmallow schemas for chat message endpoints.

A message needs text, media, or both. Media upload itself happens elsewhere;
the API only stores the resulting URL and its kind.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from hive.errors import ErrorCode
from hive.models.message import MediaType

MAX_CONTENT_LENGTH = 4000


class SendMessageSchema(Schema):
    """POST /servers/:id/messages"""

    content = fields.Str(
        load_default="",
        validate=validate.Length(max=MAX_CONTENT_LENGTH),
    )
    media_url = fields.Url(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )
    media_type = fields.Enum(
        MediaType,
        by_value=True,
        load_default=None,
        allow_none=True,
    )
    parent_message_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="parent_message_id must be a positive integer."),
    )

    @validates_schema
    def require_content_or_media(self, data, **kwargs) -> None:
        has_text = bool((data.get("content") or "").strip())
        has_media = bool(data.get("media_url"))
        if not (has_text or has_media):
            raise ValidationError(ErrorCode.EMPTY_MESSAGE, field_name="content")
        if data.get("media_type") is not None and not has_media:
            raise ValidationError(
                "media_type requires media_url.",
                field_name="media_type",
            )


class EditMessageSchema(Schema):
    """PATCH /messages/:id"""

    content = fields.Str(
        required=True,
        validate=validate.Length(max=MAX_CONTENT_LENGTH),
    )

    @validates_schema
    def require_text(self, data, **kwargs) -> None:
        if not (data.get("content") or "").strip():
            raise ValidationError(ErrorCode.EMPTY_MESSAGE, field_name="content")


class ListMessagesQuerySchema(Schema):
    """GET /servers/:id/messages?limit=&before_id="""

    limit = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, max=200, error="limit must be between 1 and 200."),
    )
    before_id = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="before_id must be a positive integer."),
    )
