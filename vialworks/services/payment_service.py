"""
Stripe payment service.
Creates and updates payment intents for storefront orders and applies
verified webhook events to orders.
"""
import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe
from flask import current_app

from vialworks.models import Order, OrderStatus
from vialworks.exceptions import NotFoundError, RemoteError, UnauthorizedError, ValidationError
from vialworks.services import email_service

logger = logging.getLogger(__name__)


def initialize_stripe() -> bool:
    """Set the API key from config; False when Stripe is not configured."""
    secret = current_app.config.get('STRIPE_SECRET_KEY')
    if not secret:
        return False
    stripe.api_key = secret
    return True


def to_minor_units(amount) -> int:
    """Decimal amount in currency units to integer cents."""
    try:
        value = Decimal(str(amount))
    except ArithmeticError:
        raise ValidationError('Invalid amount', ['amount must be a number'])
    if not value.is_finite() or value <= 0:
        raise ValidationError('Invalid amount', ['amount must be greater than 0'])
    return int((value * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def create_or_update_payment_intent(amount, currency: Optional[str] = None,
                                    payment_intent_id: Optional[str] = None,
                                    metadata: Optional[dict] = None) -> dict:
    """
    Create a payment intent, or update the amount of an existing one.

    Returns {'id', 'client_secret', 'amount'}.
    """
    cents = to_minor_units(amount)
    if not initialize_stripe():
        raise RemoteError('Stripe is not configured')
    currency = (currency or current_app.config.get('STRIPE_CURRENCY') or 'usd').lower()

    try:
        if payment_intent_id:
            params = {'amount': cents}
            if metadata:
                params['metadata'] = metadata
            intent = stripe.PaymentIntent.modify(payment_intent_id, **params)
        else:
            params = {
                'amount': cents,
                'currency': currency,
                'automatic_payment_methods': {'enabled': True},
            }
            if metadata:
                params['metadata'] = metadata
            intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as e:
        logger.exception("Stripe payment intent call failed")
        raise RemoteError(f'Payment provider error: {getattr(e, "user_message", None) or str(e)}')

    return {
        'id': intent['id'],
        'client_secret': intent['client_secret'],
        'amount': cents,
    }


def attach_order_to_payment_intent(payment_intent_id: str, order_id) -> None:
    """Store the order id in the intent metadata so the webhook can find it."""
    if not payment_intent_id or not order_id:
        raise ValidationError('PaymentIntent ID and Order ID are required')
    if not initialize_stripe():
        raise RemoteError('Stripe is not configured')
    try:
        stripe.PaymentIntent.modify(payment_intent_id, metadata={'order_id': str(order_id)})
    except stripe.StripeError as e:
        logger.exception("Could not attach order %s to payment intent %s", order_id, payment_intent_id)
        raise RemoteError(f'Payment provider error: {str(e)}')


def construct_event(payload, signature: Optional[str], secret: Optional[str]) -> dict:
    """
    Verify a Stripe webhook signature and decode the event.

    Raises UnauthorizedError (400) for a missing or invalid signature.
    """
    if not signature or not secret:
        raise UnauthorizedError('Missing signature or secret', status_code=400)
    if isinstance(payload, bytes):
        payload = payload.decode('utf-8')
    try:
        stripe.WebhookSignature.verify_header(
            payload, signature, secret, stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError as e:
        logger.warning("Stripe signature verification failed: %s", e)
        raise UnauthorizedError(f'Invalid signature: {e}', status_code=400)
    try:
        return json.loads(payload)
    except ValueError:
        raise UnauthorizedError('Invalid payload', status_code=400)


def handle_payment_event(session, event: dict) -> dict:
    """
    Apply a verified Stripe event.

    payment_intent.succeeded with metadata.order_id moves the order to
    'processing'. Other event types are acknowledged and ignored.
    """
    event_type = event.get('type')
    if event_type != 'payment_intent.succeeded':
        logger.info("Unhandled Stripe event type %s", event_type)
        return {'handled': False, 'type': event_type}

    intent = (event.get('data') or {}).get('object') or {}
    order_id = (intent.get('metadata') or {}).get('order_id')
    if not order_id:
        logger.warning("Payment succeeded but no order_id found in metadata (intent %s)", intent.get('id'))
        return {'handled': False, 'type': event_type}

    try:
        order = session.query(Order).filter(Order.id == int(order_id)).first()
    except ValueError:
        order = None
    if not order:
        raise NotFoundError(f'Order {order_id} not found')

    confirmed = order.status == OrderStatus.PENDING.value
    if confirmed:
        order.status = OrderStatus.PROCESSING.value
    if not order.payment_intent_id and intent.get('id'):
        order.payment_intent_id = intent['id']
    session.commit()
    logger.info("Payment succeeded for order %s", order.id)

    # Redelivered events find the order already processing and send nothing
    if confirmed:
        email_service.send_order_confirmation_email(order)
    return {'handled': True, 'type': event_type, 'order_id': order.id, 'status': order.status}
