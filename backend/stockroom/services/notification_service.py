# Overview: Low-stock detection and the notification inbox.

"""
Low-stock alerts.

check_low_stock runs after a ledger transaction has committed. It writes
Notification rows and stamps last_notified in its own transaction, then
(after that commit) broadcasts lowStock and emails active admins. Failures
in the broadcast or the email are logged and swallowed; they never touch
the ledger.

A record is re-notified at most once per LOW_STOCK_RENOTIFY_HOURS.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from ..errors import NotFoundError
from ..extensions import db
from ..models import InventoryRecord, Notification, User
from ..models.auth import ROLE_ADMIN
from ..models.notifications import NOTIFICATION_LOW_STOCK
from ..pagination import paginate
from ..time_utils import utcnow
from . import events_service
from .concurrency import run_in_transaction
from .email_service import EmailService


logger = logging.getLogger(__name__)

DEFAULT_RENOTIFY_HOURS = 24


def _renotify_window() -> timedelta:
    hours = current_app.config.get("LOW_STOCK_RENOTIFY_HOURS", DEFAULT_RENOTIFY_HOURS)
    return timedelta(hours=hours)


def check_low_stock(record_ids: list[int] | None = None) -> list[Notification]:
    """
    Create low-stock notifications for records at or below notify_at.

    Args:
        record_ids: Limit the check to these records (None checks all)

    Returns:
        Notifications created by this run.
    """
    if record_ids is not None and not record_ids:
        return []

    def _op():
        now = utcnow()
        cutoff = now - _renotify_window()

        query = db.session.query(InventoryRecord).filter(
            InventoryRecord.quantity <= InventoryRecord.notify_at,
            or_(InventoryRecord.last_notified.is_(None), InventoryRecord.last_notified < cutoff),
        )
        if record_ids is not None:
            query = query.filter(InventoryRecord.id.in_(record_ids))

        created = []
        for record in query.order_by(InventoryRecord.id.asc()).all():
            product_name = record.product.name if record.product else f"Product {record.product_id}"
            location_name = record.location.name if record.location else f"Location {record.location_id}"
            notification = Notification(
                type=NOTIFICATION_LOW_STOCK,
                message=(
                    f"Low stock alert: {product_name} at {location_name} has "
                    f"{record.quantity} left (notify at {record.notify_at})"
                ),
                inventory_id=record.id,
                product_id=record.product_id,
                location_id=record.location_id,
            )
            record.last_notified = now
            db.session.add(notification)
            created.append((notification, record, product_name, location_name))
        return created

    try:
        created = run_in_transaction(_op)
    except Exception:
        logger.exception("Low stock check failed")
        return []

    if not created:
        return []

    admin_emails = [
        email for (email,) in db.session.query(User.email)
        .filter(User.role == ROLE_ADMIN, User.is_active.is_(True))
        .all()
    ]

    for notification, record, product_name, location_name in created:
        logger.info("Low stock: %s at %s (qty=%s)", product_name, location_name, record.quantity)
        events_service.publish(
            events_service.LOW_STOCK,
            notification.to_dict(),
            room=events_service.location_room(record.location_id),
        )
        EmailService.send_low_stock_alert(
            admin_emails,
            product_name,
            location_name,
            record.quantity,
            record.notify_at,
        )

    return [notification for notification, *_ in created]


def list_notifications(*, unread_only: bool = False, page: int | None = None, limit: int | None = None) -> dict:
    query = db.session.query(Notification)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    return paginate(query, page=page, limit=limit)


def mark_read(notification_id: int) -> Notification:
    def _op():
        notification = db.session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
        return notification

    return run_in_transaction(_op)


def mark_all_read() -> int:
    """Mark every unread notification read. Idempotent; returns the count changed."""
    def _op():
        return (
            db.session.query(Notification)
            .filter(Notification.is_read.is_(False))
            .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
        )

    return run_in_transaction(_op)
