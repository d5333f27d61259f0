"""
Storefront blueprint.
Shipping quotes, checkout and Stripe payment intents. Public, no admin token.
"""
from flask import Blueprint, jsonify
from vialworks.database import get_session
from vialworks.exceptions import ValidationError
from vialworks.services import order_service, payment_service, shipping_service
from vialworks.utils.requests import get_payload

shop_bp = Blueprint('shop', __name__, url_prefix='/shop')


@shop_bp.route('/shipping-quote', methods=['POST'])
def shipping_quote():
    data = get_payload()
    if data.get('weight_lb') in (None, ''):
        raise ValidationError('Invalid weight', ['weight_lb is required'])
    return jsonify(shipping_service.quote(data['weight_lb']))


@shop_bp.route('/checkout', methods=['POST'])
def checkout():
    """
    Create a pending order and its payment intent.

    Body: {"items": [{"product_id", "quantity"}], "customer_email",
    "shipping_address", "weight_lb"}. Returns the order and client secret.
    """
    data = get_payload()
    order, intent = order_service.checkout(
        get_session(),
        data.get('items'),
        customer_email=data.get('customer_email'),
        shipping_address=data.get('shipping_address'),
        weight_lb=data.get('weight_lb') or 0,
    )

    return jsonify({
        'order': order.to_dict(),
        'client_secret': intent['client_secret'],
        'payment_intent_id': intent['id'],
    }), 201


@shop_bp.route('/payment-intents', methods=['POST'])
def payment_intent():
    """
    Create or update a bare payment intent.

    Body: {"amount", "currency"?, "payment_intent_id"?, "order_id"?}.
    With order_id the intent is tagged so the webhook can settle the order.
    """
    data = get_payload()
    if data.get('amount') in (None, ''):
        raise ValidationError('Amount is required')

    intent = payment_service.create_or_update_payment_intent(
        data['amount'],
        currency=data.get('currency'),
        payment_intent_id=data.get('payment_intent_id'),
    )
    if data.get('order_id'):
        payment_service.attach_order_to_payment_intent(intent['id'], data['order_id'])

    return jsonify({'clientSecret': intent['client_secret'], 'id': intent['id']})
