# Overview: Request helpers shared by the API blueprints.

from flask import g, request

from ..errors import AccessDeniedError, ValidationError
from ..services import auth_service


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def page_args() -> dict:
    return {
        "page": request.args.get("page", type=int),
        "limit": request.args.get("limit", type=int),
    }


def flag_arg(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes"}


def location_scope():
    """Location ids the caller may see; None for admins."""
    return auth_service.accessible_location_ids(g.current_user)


def ensure_location_access(location_id, message: str = "You do not have access to this location") -> None:
    if not auth_service.has_location_access(g.current_user, location_id):
        raise AccessDeniedError(message, {"location_id": location_id})
