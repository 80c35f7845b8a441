"""
routes/servers.py — Server and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries.

Endpoints (url_prefix=/api/v1/servers):
  POST   /servers                         → 201  create server (caller becomes owner)
  GET    /servers                         → 200  servers the caller belongs to
  GET    /servers/public                  → 200  all public servers
  GET    /servers/:id                     → 200  server details
  PATCH  /servers/:id                     → 200  update settings (owner only)
  DELETE /servers/:id                     → 200  delete server (owner or platform admin)
  POST   /servers/:id/join                → 201  join a public server
  POST   /servers/:id/leave               → 200  leave (not the owner)
  GET    /servers/:id/members             → 200  member list
  PATCH  /servers/:id/members/:uid        → 200  change role (owner only)
  DELETE /servers/:id/members/:uid        → 200  remove member (owner only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from hive.extensions import db
from hive.middleware.auth_middleware import require_auth
from hive.models.membership import MemberRole
from hive.schemas.server_schema import CreateServerSchema, SetRoleSchema, UpdateServerSchema
from hive.services import membership_service, server_service

servers_bp = Blueprint("servers", __name__)


@servers_bp.route("/", methods=["POST"])
@require_auth
def create_server():
    """POST /servers — Create a server. Caller becomes owner and first member."""
    data = CreateServerSchema().load(request.get_json(force=True) or {})
    result = server_service.create_server(
        name=data["name"],
        owner_id=g.user_id,
        description=data["description"],
        is_public=data["is_public"],
        image_url=data["image_url"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@servers_bp.route("/", methods=["GET"])
@require_auth
def list_my_servers():
    """GET /servers — Servers the caller is a member of."""
    result = server_service.list_user_servers(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/public", methods=["GET"])
@require_auth
def list_public_servers():
    """GET /servers/public — Every public server, newest first."""
    result = server_service.list_public_servers(session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/<int:server_id>", methods=["GET"])
@require_auth
def get_server(server_id: int):
    """GET /servers/:id — Server details with member_count and caller's role."""
    result = server_service.get_server(
        server_id=server_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/<int:server_id>", methods=["PATCH"])
@require_auth
def update_server(server_id: int):
    """PATCH /servers/:id — Edit name, description, image or visibility. Owner only."""
    data = UpdateServerSchema().load(request.get_json(force=True) or {})
    result = server_service.update_server(
        server_id=server_id,
        requester_id=g.user_id,
        changes=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/<int:server_id>", methods=["DELETE"])
@require_auth
def delete_server(server_id: int):
    """DELETE /servers/:id — Delete the server with all messages and memberships."""
    server_service.delete_server(
        server_id=server_id,
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "server_id": server_id},
        "warnings": [],
    }), 200


@servers_bp.route("/<int:server_id>/join", methods=["POST"])
@require_auth
def join_server(server_id: int):
    """POST /servers/:id/join — Join a public server as a plain member."""
    result = server_service.join_server(
        server_id=server_id,
        user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@servers_bp.route("/<int:server_id>/leave", methods=["POST"])
@require_auth
def leave_server(server_id: int):
    """POST /servers/:id/leave — Leave a server. The owner cannot leave."""
    result = membership_service.leave_server(
        server_id=server_id,
        user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/<int:server_id>/members", methods=["GET"])
@require_auth
def list_members(server_id: int):
    """GET /servers/:id/members — Owner, moderators, then members."""
    result = membership_service.list_members(
        server_id=server_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/<int:server_id>/members/<string:target_uid>", methods=["PATCH"])
@require_auth
def set_member_role(server_id: int, target_uid: str):
    """PATCH /servers/:id/members/:uid — Promote or demote a member. Owner only."""
    data = SetRoleSchema().load(request.get_json(force=True) or {})
    result = membership_service.set_role(
        server_id=server_id,
        target_user_id=target_uid,
        new_role=MemberRole.parse(data["role"]),
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@servers_bp.route("/<int:server_id>/members/<string:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(server_id: int, target_uid: str):
    """DELETE /servers/:id/members/:uid — Remove a member. Owner only."""
    result = membership_service.remove_member(
        server_id=server_id,
        target_user_id=target_uid,
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
