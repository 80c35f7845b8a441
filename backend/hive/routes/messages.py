"""
routes/messages.py — Server chat message route handlers.

Endpoints (registered at /api/v1 so both path shapes live here):
  GET    /servers/:id/messages   → 200  chronological history (members only)
  POST   /servers/:id/messages   → 201  send a message (members only)
  PATCH  /messages/:id           → 200  edit text (author only)
  DELETE /messages/:id           → 200  moderated delete
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from hive.extensions import db
from hive.middleware.auth_middleware import require_auth
from hive.schemas.message_schema import (
    EditMessageSchema,
    ListMessagesQuerySchema,
    SendMessageSchema,
)
from hive.services import message_service

messages_bp = Blueprint("messages", __name__)


@messages_bp.route("/servers/<int:server_id>/messages", methods=["GET"])
@require_auth
def list_messages(server_id: int):
    """GET /servers/:id/messages — ?limit=&before_id= for paging back in time."""
    query = ListMessagesQuerySchema().load(request.args.to_dict())
    result = message_service.list_messages(
        server_id=server_id,
        caller_id=g.user_id,
        limit=query["limit"] or current_app.config["MESSAGES_PAGE_SIZE"],
        before_id=query["before_id"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@messages_bp.route("/servers/<int:server_id>/messages", methods=["POST"])
@require_auth
def send_message(server_id: int):
    """POST /servers/:id/messages — Post text and/or media, optionally as a reply."""
    data = SendMessageSchema().load(request.get_json(force=True) or {})
    result = message_service.send_message(
        server_id=server_id,
        author_id=g.user_id,
        content=data["content"],
        media_url=data["media_url"],
        media_type=data["media_type"],
        parent_message_id=data["parent_message_id"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@messages_bp.route("/messages/<int:message_id>", methods=["PATCH"])
@require_auth
def edit_message(message_id: int):
    """PATCH /messages/:id — Replace the text of your own message."""
    data = EditMessageSchema().load(request.get_json(force=True) or {})
    result = message_service.edit_message(
        message_id=message_id,
        requester_id=g.user_id,
        content=data["content"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@messages_bp.route("/messages/<int:message_id>", methods=["DELETE"])
@require_auth
def delete_message(message_id: int):
    """
    DELETE /messages/:id — Hard delete, allowed for the author, the owner,
    a moderator over plain members, or a platform admin.
    """
    result = message_service.delete_message(
        message_id=message_id,
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
