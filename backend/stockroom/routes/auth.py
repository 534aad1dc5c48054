# Overview: Flask API routes for login, the current user and user creation.

from flask import Blueprint, g, jsonify

from ..decorators import require_admin, require_auth
from ..services import auth_service
from . import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    """
    Exchange credentials for a bearer token.

    Request body:
    {
        "username": str (username or email),
        "password": str
    }
    """
    payload = json_body()
    identifier = payload.get("username") or payload.get("email")
    user = auth_service.authenticate(identifier, payload.get("password"))
    return jsonify({
        "token": auth_service.issue_token(user),
        "user": user.to_dict(),
    }), 200


@auth_bp.get("/me")
@require_auth
def me():
    return jsonify(g.current_user.to_dict()), 200


@auth_bp.post("/users")
@require_auth
@require_admin
def create_user():
    payload = json_body()
    user = auth_service.create_user(
        username=payload.get("username"),
        email=payload.get("email"),
        password=payload.get("password"),
        role=payload.get("role", "staff"),
        name=payload.get("name"),
        location_ids=payload.get("location_ids"),
    )
    return jsonify(user.to_dict()), 201


@auth_bp.get("/users")
@require_auth
@require_admin
def list_users():
    return jsonify([user.to_dict() for user in auth_service.list_users()]), 200
