"""
Storefront order service.
Prices carts from the catalogue and records orders before payment.
"""
import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from vialworks.models import Order, OrderItem, OrderStatus, Product
from vialworks.exceptions import BusinessLogicError, NotFoundError, RemoteError, ValidationError, VialWorksError
from vialworks.services import email_service, payment_service
from vialworks.services.shipping_service import calculate_shipping
from vialworks.utils.parsing import clean_str, parse_int

logger = logging.getLogger(__name__)

ORDER_STATUSES = tuple(s.value for s in OrderStatus)


def _parse_items(items) -> List[dict]:
    if not items or not isinstance(items, list):
        raise ValidationError('Cart is empty')
    errors = []
    parsed = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            errors.append(f'item {index} is invalid')
            continue
        product_id = parse_int(item.get('product_id'), f'item {index} product_id', errors)
        quantity = parse_int(item.get('quantity'), f'item {index} quantity', errors)
        if product_id and quantity:
            parsed.append({'product_id': product_id, 'quantity': quantity})
    if errors:
        raise ValidationError('Invalid cart', errors)
    return parsed


def create_order(session, items, customer_email: Optional[str] = None,
                 shipping_address: Optional[dict] = None, weight_lb=0, commit: bool = True) -> Order:
    """
    Create a pending order from cart items.

    Prices come from the catalogue, never from the client. Shipping is the
    flat-rate quote for weight_lb. With commit=False the order is only
    flushed and the caller owns the transaction.
    """
    lines = _parse_items(items)
    product_ids = [line['product_id'] for line in lines]
    products = {
        p.id: p for p in session.query(Product).filter(Product.id.in_(product_ids)).all()
    }

    subtotal = Decimal('0.00')
    for line in lines:
        product = products.get(line['product_id'])
        if not product:
            raise NotFoundError(f'Product {line["product_id"]} not found')
        if not product.is_active or product.price is None:
            raise BusinessLogicError(f'Product "{product.name}" is not available')
        line['price'] = Decimal(str(product.price)).quantize(Decimal('0.01'))
        subtotal += line['price'] * line['quantity']

    shipping_cost = calculate_shipping(weight_lb or 0)
    currency = current_app.config.get('STRIPE_CURRENCY', 'usd') if has_app_context() else 'usd'

    try:
        order = Order(
            customer_email=clean_str(customer_email),
            status=OrderStatus.PENDING.value,
            total_amount=(subtotal + shipping_cost).quantize(Decimal('0.01')),
            shipping_cost=shipping_cost,
            currency=currency,
            shipping_address=shipping_address or None,
        )
        session.add(order)
        session.flush()

        for line in lines:
            session.add(OrderItem(
                order_id=order.id,
                product_id=line['product_id'],
                quantity=line['quantity'],
                price_at_time=line['price'],
            ))
        if commit:
            session.commit()
        else:
            session.flush()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error creating order")
        raise RemoteError(f'Could not create order: {e}')

    logger.info("Order %s created: total %s %s", order.id, order.total_amount, order.currency)
    return order


def checkout(session, items, customer_email: Optional[str] = None,
             shipping_address: Optional[dict] = None, weight_lb=0) -> Tuple[Order, dict]:
    """
    Create a pending order and its Stripe payment intent together.

    The order is committed only once the intent exists and its id is stored
    on the order; a payment provider failure leaves nothing behind.
    Returns (order, intent).
    """
    order = create_order(session, items, customer_email=customer_email,
                         shipping_address=shipping_address, weight_lb=weight_lb, commit=False)
    try:
        intent = payment_service.create_or_update_payment_intent(
            order.total_amount,
            currency=order.currency,
            metadata={'order_id': str(order.id)},
        )
        order.payment_intent_id = intent['id']
        session.commit()
    except VialWorksError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error storing payment intent for checkout")
        raise RemoteError(f'Could not complete checkout: {e}')

    logger.info("Checkout for order %s with payment intent %s", order.id, intent['id'])
    return order, intent


def get_order(session, order_id: int) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Order {order_id} not found')
    return order


def list_orders(session, status: Optional[str] = None, limit: int = 100) -> List[Order]:
    query = session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def update_order(session, order_id: int, data: dict) -> Order:
    """
    Back-office order edit: status and tracking number.

    The customer is e-mailed when the status changes.
    """
    order = get_order(session, order_id)
    errors = []
    previous_status = order.status

    if 'status' in data:
        status = clean_str(data.get('status'))
        if status not in ORDER_STATUSES:
            errors.append(f'status must be one of {", ".join(ORDER_STATUSES)}')
        else:
            order.status = status
    if 'tracking_number' in data:
        order.tracking_number = clean_str(data.get('tracking_number'))
    if errors:
        session.rollback()
        raise ValidationError('Invalid order data', errors)

    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error updating order %s", order_id)
        raise RemoteError(f'Could not update order: {e}')

    if order.status != previous_status:
        logger.info("Order %s status %s -> %s", order.id, previous_status, order.status)
        email_service.send_order_status_email(order)
    return order
