"""
Email service for order notifications.
Uses Flask-Mail for SMTP delivery.
"""
import logging
from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()

STATUS_TEXT = {
    'pending': 'Pending',
    'processing': 'Processing',
    'shipped': 'Shipped',
    'delivered': 'Delivered',
    'exception': 'Delivery issue',
    'cancelled': 'Cancelled',
}


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """Mail is sent only when a server and account are configured and sending is not suppressed."""
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def _status_message(status: str, tracking_number=None) -> str:
    if status == 'shipped':
        line = 'Your order is on its way.'
        if tracking_number:
            line += f' Tracking number: {tracking_number}.'
        return line
    if status == 'delivered':
        return 'Your order has been delivered. Thank you for your purchase!'
    return "We'll keep you updated on any changes to your order status."


def send_order_status_email(order) -> bool:
    """
    Notify the customer of an order status change.

    Returns True when sent (or skipped because mail is disabled),
    False when sending failed. Failures never interrupt the caller.
    """
    if not order.customer_email:
        logger.info("[EMAIL] Order %s has no customer email, notification skipped", order.id)
        return False

    if not _mail_enabled():
        logger.warning("[MAIL DISABLED] Status email skipped for order %s", order.id)
        return True

    store = current_app.config.get('STORE_NAME', 'VialWorks')
    status_text = STATUS_TEXT.get(order.status, order.status)
    body = (
        f"Hello,\n\n"
        f"Your order #{order.id} status has been updated to: {status_text}.\n"
        f"{_status_message(order.status, order.tracking_number)}\n\n"
        f"{store}"
    )
    try:
        msg = Message(
            subject=f"{store} - Order #{order.id} {status_text}",
            recipients=[order.customer_email],
            body=body,
        )
        mail.send(msg)
        logger.info("[EMAIL] Status email sent for order %s (%s)", order.id, order.status)
        return True
    except Exception:
        logger.exception("[EMAIL] Error sending status email for order %s", order.id)
        return False


def send_order_confirmation_email(order) -> bool:
    """
    Confirm a paid order to the customer with its lines and totals.

    Same return contract as send_order_status_email.
    """
    if not order.customer_email:
        logger.info("[EMAIL] Order %s has no customer email, confirmation skipped", order.id)
        return False

    if not _mail_enabled():
        logger.warning("[MAIL DISABLED] Confirmation email skipped for order %s", order.id)
        return True

    store = current_app.config.get('STORE_NAME', 'VialWorks')
    currency = (order.currency or '').upper()
    lines = [
        f"  {item.quantity} x {item.product.name if item.product else item.product_id} "
        f"@ {item.price_at_time} {currency}"
        for item in order.items
    ]
    body = (
        f"Hello,\n\n"
        f"Thank you for your order #{order.id}. Your payment has been received.\n\n"
        + "\n".join(lines) + "\n\n"
        f"Shipping: {order.shipping_cost} {currency}\n"
        f"Total: {order.total_amount} {currency}\n\n"
        f"We'll let you know when it ships.\n\n"
        f"{store}"
    )
    try:
        msg = Message(
            subject=f"{store} - Order #{order.id} confirmed",
            recipients=[order.customer_email],
            body=body,
        )
        mail.send(msg)
        logger.info("[EMAIL] Confirmation email sent for order %s", order.id)
        return True
    except Exception:
        logger.exception("[EMAIL] Error sending confirmation email for order %s", order.id)
        return False
