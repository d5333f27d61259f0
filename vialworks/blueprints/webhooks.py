"""
Webhooks Blueprint for Stripe payment events and FedEx tracking notifications.
Authenticated by their own signatures or shared secrets, not the admin token.
"""

import logging
from flask import Blueprint, request, jsonify, current_app
from vialworks.database import get_session
from vialworks.exceptions import UnauthorizedError
from vialworks.services import carrier_service, payment_service
from vialworks.blueprints.metrics import webhook_events_total

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


@webhooks_bp.route('/stripe', methods=['POST'])
def stripe_webhook():
    """
    Handle Stripe events.

    Expected events:
    - payment_intent.succeeded (moves the order in metadata.order_id to processing)
    Everything else is acknowledged.
    """
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature')

    try:
        event = payment_service.construct_event(
            payload, signature, current_app.config.get('STRIPE_WEBHOOK_SECRET')
        )
    except UnauthorizedError:
        webhook_events_total.labels(source='stripe', outcome='rejected').inc()
        raise

    logger.info("Received Stripe webhook: type=%s id=%s", event.get('type'), event.get('id'))
    result = payment_service.handle_payment_event(get_session(), event)
    webhook_events_total.labels(source='stripe', outcome='handled' if result['handled'] else 'ignored').inc()

    return jsonify({'received': True, **result}), 200


@webhooks_bp.route('/fedex', methods=['POST'])
def fedex_webhook():
    """Handle FedEx Track notifications."""
    authorized = carrier_service.is_authorized(
        current_app.config.get('FEDEX_WEBHOOK_SECRET'),
        request.headers.get('Authorization'),
        request.headers.get('X-FedEx-Secret'),
    )
    if not authorized:
        logger.error("Unauthorized FedEx webhook access attempt")
        webhook_events_total.labels(source='fedex', outcome='rejected').inc()
        raise UnauthorizedError('Unauthorized')

    payload = request.get_json(silent=True)
    if not payload:
        logger.warning("Empty FedEx webhook payload")
        return jsonify({'status': 'error', 'message': 'Empty payload'}), 400

    summary = carrier_service.process_tracking_events(get_session(), payload)
    webhook_events_total.labels(source='fedex', outcome='handled').inc()
    logger.info("FedEx webhook processed: %s", summary)

    return jsonify({'success': True, **summary}), 200
