"""
FedEx tracking notifications.
Maps carrier scan codes to order and shipment statuses.
"""
import hmac
import logging
from typing import List, Optional

from vialworks.models import Order, OrderStatus, Shipment, ShipmentBox, ShipmentStatus
from vialworks.services import email_service, shipment_service
from vialworks.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SHIPPED_CODES = ('PU', 'PX', 'SF', 'DP')
DELIVERED_CODES = ('DL',)
EXCEPTION_CODES = ('SE', 'DE', 'CA')


def map_fedex_status(code: Optional[str]) -> Optional[str]:
    """Order status for a FedEx status code, or None for informational scans."""
    if not code:
        return None
    code = str(code).strip().upper()
    if code in SHIPPED_CODES:
        return OrderStatus.SHIPPED.value
    if code in DELIVERED_CODES:
        return OrderStatus.DELIVERED.value
    if code in EXCEPTION_CODES:
        return OrderStatus.EXCEPTION.value
    return None


def is_authorized(secret: Optional[str], authorization: Optional[str], secret_header: Optional[str]) -> bool:
    """Accept 'Authorization: Bearer <secret>' or an X-FedEx-Secret header. No secret configured accepts all."""
    if not secret:
        return True
    candidates = []
    if authorization:
        candidates.append(hmac.compare_digest(authorization.encode('utf-8'), f'Bearer {secret}'.encode('utf-8')))
    if secret_header:
        candidates.append(hmac.compare_digest(secret_header.encode('utf-8'), secret.encode('utf-8')))
    return any(candidates)


def extract_events(payload) -> List[dict]:
    """Events from TrackNotification, notifications or the payload itself."""
    if not isinstance(payload, dict):
        return []
    events = payload.get('TrackNotification') or payload.get('notifications')
    if isinstance(events, list):
        return [e for e in events if isinstance(e, dict)]
    return [payload]


def _event_fields(event: dict):
    tracking_number = event.get('trackingNumber') or event.get('TrackingNumber')
    detail = event.get('statusDetail') or event.get('StatusDetail') or {}
    code = detail.get('code') or detail.get('Code')
    description = detail.get('description') or detail.get('Description')
    return tracking_number, code, description


def _update_orders(session, tracking_number: str, status: str, summary: dict) -> List[Order]:
    updated = []
    orders = session.query(Order).filter(Order.tracking_number == tracking_number).all()
    if not orders:
        logger.warning("No order found for tracking number %s", tracking_number)
    for order in orders:
        if order.status == status:
            logger.info("Order %s is already %s, skipping update", order.id, status)
            summary['skipped'] += 1
            continue
        order.status = status
        updated.append(order)
    return updated


def _update_shipments(session, tracking_number: str, status: str):
    """Move shipments holding a box with this tracking number; returns (count, batch ids)."""
    if status == OrderStatus.EXCEPTION.value:
        return 0, set()
    shipments = session.query(Shipment).join(
        ShipmentBox, ShipmentBox.shipment_id == Shipment.id
    ).filter(ShipmentBox.tracking_number == tracking_number).distinct().all()

    batch_ids = set()
    updated = 0
    now = utcnow()
    for shipment in shipments:
        if shipment.status == status:
            continue
        # Late pickup scans never move a delivered shipment back
        if shipment.status == ShipmentStatus.DELIVERED.value and status == ShipmentStatus.SHIPPED.value:
            continue
        shipment.status = status
        shipment.shipped_at = shipment.shipped_at or now
        if status == ShipmentStatus.DELIVERED.value:
            shipment.delivered_at = shipment.delivered_at or now
        updated += 1
        if shipment.batch_id:
            batch_ids.add(shipment.batch_id)
    return updated, batch_ids


def process_tracking_events(session, payload) -> dict:
    """
    Apply FedEx tracking notifications.

    Matching orders move to the mapped status (redundant updates skipped) and
    customers are emailed for shipped and delivered. Matching shipments follow
    shipped and delivered scans, and their batches are re-aggregated.
    """
    summary = {'events': 0, 'orders_updated': 0, 'shipments_updated': 0, 'skipped': 0, 'ignored': 0}
    notify = []
    batch_ids = set()

    for event in extract_events(payload):
        summary['events'] += 1
        tracking_number, code, description = _event_fields(event)
        if not tracking_number:
            logger.warning("Event missing tracking number")
            summary['ignored'] += 1
            continue

        logger.info("Processing event for %s: %s - %s", tracking_number, code, description)
        status = map_fedex_status(code)
        if status is None:
            summary['ignored'] += 1
            continue
        if status == OrderStatus.EXCEPTION.value:
            logger.warning("Shipment exception for %s: %s", tracking_number, description)

        orders = _update_orders(session, tracking_number, status, summary)
        summary['orders_updated'] += len(orders)
        if status != OrderStatus.EXCEPTION.value:
            notify.extend(orders)

        count, touched = _update_shipments(session, tracking_number, status)
        summary['shipments_updated'] += count
        batch_ids |= touched

    session.commit()

    for batch_id in sorted(batch_ids):
        result = shipment_service.update_batch_status(session, batch_id)
        if not result.ok:
            logger.warning("Batch %s not re-aggregated after tracking update: %s", batch_id, result.error_message)

    for order in notify:
        email_service.send_order_status_email(order)

    return summary
