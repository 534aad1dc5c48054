# Overview: Flask API routes for low-stock notifications.

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_manager_or_admin
from ..services import notification_service
from . import flag_arg, page_args


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_manager_or_admin
def list_notifications():
    result = notification_service.list_notifications(unread_only=flag_arg("unread"), **page_args())
    return jsonify(result), 200


@notifications_bp.patch("/read-all")
@require_auth
@require_manager_or_admin
def mark_all_read():
    updated = notification_service.mark_all_read()
    return jsonify({"updated": updated}), 200


@notifications_bp.patch("/<int:notification_id>/read")
@require_auth
@require_manager_or_admin
def mark_read(notification_id: int):
    notification = notification_service.mark_read(notification_id)
    return jsonify(notification.to_dict()), 200
