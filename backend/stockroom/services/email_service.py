import logging

from flask import current_app
from flask_mail import Message

from ..extensions import mail

logger = logging.getLogger(__name__)


class EmailService:
    """Outbound email. Every method returns True/False and never raises."""

    @staticmethod
    def is_configured():
        """Check if email is properly configured"""
        return bool(
            current_app.config.get("MAIL_SERVER")
            and current_app.config.get("MAIL_DEFAULT_SENDER")
        )

    @staticmethod
    def send_low_stock_alert(recipients, product_name, location_name, quantity, notify_at):
        """Tell admins that a product dropped to its notify threshold at a location"""
        if not recipients:
            return False
        if not EmailService.is_configured():
            logger.info("Email not configured - skipping low stock alert for %s at %s", product_name, location_name)
            return False

        subject = f"Low stock: {product_name} at {location_name}"
        text_body = (
            f"{product_name} is running low at {location_name}.\n\n"
            f"Current quantity: {quantity}\n"
            f"Notify threshold: {notify_at}\n"
        )
        html_body = f"""
        <h2>Low stock alert</h2>
        <p><strong>{product_name}</strong> is running low at <strong>{location_name}</strong>.</p>
        <p>Current quantity: {quantity}<br>Notify threshold: {notify_at}</p>
        """
        return EmailService._send_email(recipients, subject, html_body, text_body)

    @staticmethod
    def _send_email(recipients, subject, html_body, text_body=None):
        """Internal method to send email"""
        try:
            msg = Message(
                subject=subject,
                recipients=list(recipients),
                html=html_body,
                body=text_body,
            )
            mail.send(msg)
            logger.info("Email sent successfully to %s", ", ".join(recipients))
            return True

        except Exception as e:
            logger.error("Failed to send email to %s: %s", ", ".join(recipients), e)
            return False
