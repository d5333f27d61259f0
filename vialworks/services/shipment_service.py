"""
Shipment service.

Shipments and their boxes drive a batch's derived fields: shipped_units,
units_in_progress, status, started_at and completed_at are recomputed from
scratch by update_batch_status after every shipment change.
"""
import logging
from datetime import date
from typing import Iterable, Optional

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from vialworks.models import (
    BatchStatus, MovementReferenceType, ProductionBatch, Shipment, ShipmentBox, ShipmentStatus,
)
from vialworks.exceptions import (
    BusinessLogicError, NotFoundError, RemoteError, ValidationError, VialWorksError,
)
from vialworks.services import bom_service, inventory_service
from vialworks.services.dto import BatchStatusUpdate, ServiceResult
from vialworks.utils.parsing import clean_str, parse_decimal, parse_int
from vialworks.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SHIPMENT_STATUSES = tuple(s.value for s in ShipmentStatus)
OPEN_STATUSES = (ShipmentStatus.PREPARING.value, ShipmentStatus.PENDING.value)


def derive_batch_status(current_status: str, shipment_statuses: Iterable[str]) -> str:
    """
    Batch status implied by its shipments.

    No shipments means pending. Any open (preparing or pending) shipment
    means in progress, even when others are delivered. Only when every
    shipment is delivered is the batch completed. Anything else, such as a
    mix of shipped and delivered, leaves the status as it is.
    """
    statuses = list(shipment_statuses)
    if not statuses:
        return BatchStatus.PENDING.value
    if any(s in OPEN_STATUSES for s in statuses):
        return BatchStatus.IN_PROGRESS.value
    if all(s == ShipmentStatus.DELIVERED.value for s in statuses):
        return BatchStatus.COMPLETED.value
    return current_status


def _recompute(session, batch: ProductionBatch) -> BatchStatusUpdate:
    shipments = session.query(Shipment).filter(
        Shipment.batch_id == batch.id
    ).order_by(Shipment.created_at, Shipment.id).all()

    # 1. Backfill started_at from the earliest pending shipment
    if batch.started_at is None:
        pending = [s for s in shipments if s.status == ShipmentStatus.PENDING.value]
        if pending:
            batch.started_at = pending[0].created_at

    # 2. Sum box units using the batch's own sale type
    shipped_units = 0
    units_in_progress = 0
    for shipment in shipments:
        units = sum(box.units_for(batch.sale_type) for box in shipment.boxes)
        shipped_units += units
        if shipment.status in OPEN_STATUSES:
            units_in_progress += units

    # 3. Derive status
    previous = batch.status
    if previous == BatchStatus.CANCELLED.value:
        status = previous
    elif not shipments and batch.materials_deducted_at is not None:
        # Production started, nothing boxed yet
        status = BatchStatus.IN_PROGRESS.value
    else:
        status = derive_batch_status(previous, [s.status for s in shipments])

    if status == BatchStatus.COMPLETED.value:
        if batch.completed_at is None:
            batch.completed_at = utcnow()
    else:
        batch.completed_at = None

    batch.status = status
    batch.shipped_units = shipped_units
    batch.units_in_progress = units_in_progress

    return BatchStatusUpdate(
        batch_id=batch.id,
        status=status,
        shipped_units=shipped_units,
        units_in_progress=units_in_progress,
        started_at=batch.started_at,
        completed_at=batch.completed_at,
        status_changed=status != previous,
    )


def update_batch_status(session, batch_id: int, raise_errors: bool = False) -> ServiceResult:
    """
    Recompute a batch's derived fields from its shipments and persist them.

    Idempotent: a second call without shipment changes writes the same values.
    Failures are logged and returned as a failed ServiceResult, or re-raised
    when raise_errors is set.
    """
    try:
        batch = session.query(ProductionBatch).filter(ProductionBatch.id == batch_id).first()
        if not batch:
            raise NotFoundError(f'Batch {batch_id} not found')

        update = _recompute(session, batch)
        session.commit()
        if update.status_changed:
            logger.info("Batch %s status -> %s", batch.batch_number, update.status)
        return ServiceResult.success(update)

    except (VialWorksError, SQLAlchemyError) as e:
        session.rollback()
        logger.exception("Failed to update status of batch %s", batch_id)
        if raise_errors:
            raise
        if isinstance(e, SQLAlchemyError):
            e = RemoteError(f'Database error updating batch {batch_id}: {e}')
        return ServiceResult.failure(e)


def _aggregate(session, batch_id: Optional[int]) -> Optional[ServiceResult]:
    if batch_id is None:
        return None
    result = update_batch_status(session, batch_id)
    if not result.ok:
        logger.warning("Batch %s not re-aggregated: %s", batch_id, result.error_message)
    return result


def _shipment_prefix() -> str:
    if has_app_context():
        return current_app.config.get('SHIPMENT_NUMBER_PREFIX', 'SHP')
    return 'SHP'


def generate_shipment_number(session, today: Optional[date] = None) -> str:
    today = today or utcnow().date()
    stem = f"{_shipment_prefix()}-{today.strftime('%Y%m%d')}-"
    sequence = session.query(Shipment).filter(Shipment.shipment_number.like(f'{stem}%')).count() + 1
    while session.query(Shipment.id).filter(Shipment.shipment_number == f'{stem}{sequence:03d}').first():
        sequence += 1
    return f'{stem}{sequence:03d}'


def get_shipment(session, shipment_id: int) -> Shipment:
    shipment = session.query(Shipment).filter(Shipment.id == shipment_id).first()
    if not shipment:
        raise NotFoundError(f'Shipment {shipment_id} not found')
    return shipment


def create_shipment(session, batch_id: int, data: Optional[dict] = None) -> Shipment:
    """Open a shipment for a batch in 'preparing' status."""
    data = data or {}
    batch = session.query(ProductionBatch).filter(ProductionBatch.id == batch_id).first()
    if not batch:
        raise NotFoundError(f'Batch {batch_id} not found')
    if batch.status == BatchStatus.CANCELLED.value:
        raise BusinessLogicError('Cannot ship a cancelled batch')

    delivery_date = None
    if data.get('delivery_date'):
        try:
            delivery_date = date.fromisoformat(str(data['delivery_date']))
        except ValueError:
            raise ValidationError('Invalid shipment data', ['delivery_date must be YYYY-MM-DD'])

    shipment = Shipment(
        shipment_number=clean_str(data.get('shipment_number')) or generate_shipment_number(session),
        batch_id=batch.id,
        status=ShipmentStatus.PREPARING.value,
        delivery_date=delivery_date,
    )
    try:
        session.add(shipment)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise BusinessLogicError(f'Could not create shipment: {e}')

    logger.info("Shipment %s created for batch %s", shipment.shipment_number, batch.batch_number)
    _aggregate(session, batch.id)
    return shipment


def _validate_box(data: dict, batch: ProductionBatch) -> dict:
    errors = []
    values = {
        'box_number': parse_int(data.get('box_number'), 'box_number', errors),
        'weight_lb': parse_decimal(data.get('weight_lb'), 'weight_lb', errors, required=False),
        'dimension_length_in': parse_decimal(data.get('dimension_length_in'), 'dimension_length_in', errors, required=False),
        'dimension_width_in': parse_decimal(data.get('dimension_width_in'), 'dimension_width_in', errors, required=False),
        'dimension_height_in': parse_decimal(data.get('dimension_height_in'), 'dimension_height_in', errors, required=False),
        'destination': clean_str(data.get('destination')),
        'tracking_number': clean_str(data.get('tracking_number')),
        'fba_id': clean_str(data.get('fba_id')),
    }
    if batch.is_pack:
        packs = parse_int(data.get('packs_per_box'), 'packs_per_box', errors)
        values['packs_per_box'] = packs
        # Bottles follow from packs for pack batches
        values['bottles_per_box'] = packs * batch.pack_quantity if packs and batch.pack_quantity else None
    else:
        values['packs_per_box'] = None
        values['bottles_per_box'] = parse_int(data.get('bottles_per_box'), 'bottles_per_box', errors)
    if errors:
        raise ValidationError('Invalid box data', errors)
    return values


def _batch_box_units(session, batch: ProductionBatch) -> int:
    column = ShipmentBox.packs_per_box if batch.is_pack else ShipmentBox.bottles_per_box
    total = session.query(func.coalesce(func.sum(column), 0)).join(
        Shipment, ShipmentBox.shipment_id == Shipment.id
    ).filter(Shipment.batch_id == batch.id).scalar()
    return int(total or 0)


def add_box(session, shipment_id: int, data: dict) -> ShipmentBox:
    """
    Add a box to a shipment.

    Box units across the whole batch may not exceed its capacity (packs for
    pack batches, bottles otherwise). The vial type's per-box packaging is
    deducted and the box inserted in one transaction, then the batch is
    re-aggregated.
    """
    shipment = get_shipment(session, shipment_id)
    batch = shipment.batch
    if batch is None:
        raise BusinessLogicError('Shipment is not linked to a batch')
    values = _validate_box(data, batch)

    try:
        # 1. Box numbers are unique within a shipment
        duplicate = session.query(ShipmentBox.id).filter(
            ShipmentBox.shipment_id == shipment.id,
            ShipmentBox.box_number == values['box_number'],
        ).first()
        if duplicate:
            raise BusinessLogicError(f'Box {values["box_number"]} already exists in this shipment')

        # 2. Capacity check
        capacity = batch.pack_count if batch.is_pack else batch.quantity
        new_units = values['packs_per_box'] if batch.is_pack else values['bottles_per_box']
        already = _batch_box_units(session, batch)
        if already + new_units > capacity:
            unit = 'packs' if batch.is_pack else 'units'
            raise BusinessLogicError(
                f'Box exceeds batch quantity: {already} of {capacity} {unit} already boxed, '
                f'{capacity - already} remaining'
            )

        # 3. Insert box and deduct per-box packaging together
        box = ShipmentBox(shipment_id=shipment.id, **values)
        session.add(box)
        session.flush()
        requirements = bom_service.requirements_for_boxes(session, batch.vial_type_id, 1)
        inventory_service.deduct_requirements(
            session, requirements, MovementReferenceType.BOX, box.id,
            notes=f'Box {box.box_number} of {shipment.shipment_number}',
        )
        session.commit()

    except VialWorksError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error adding box to shipment %s", shipment_id)
        raise RemoteError(f'Could not add box: {e}')

    logger.info("Box %s added to %s", box.box_number, shipment.shipment_number)
    _aggregate(session, batch.id)
    return box


def delete_box(session, box_id: int) -> None:
    """Remove a box, returning its per-box packaging to stock."""
    box = session.query(ShipmentBox).filter(ShipmentBox.id == box_id).first()
    if not box:
        raise NotFoundError(f'Box {box_id} not found')
    shipment = box.shipment
    batch_id = shipment.batch_id

    try:
        if shipment.batch is not None:
            requirements = bom_service.requirements_for_boxes(session, shipment.batch.vial_type_id, 1)
            inventory_service.add_requirements(
                session, requirements, MovementReferenceType.BOX, box.id,
                notes=f'Box {box.box_number} removed from {shipment.shipment_number}',
            )
        shipment.boxes.remove(box)
        session.delete(box)
        session.flush()

        if not shipment.boxes:
            shipment.status = ShipmentStatus.PREPARING.value
            shipment.shipped_at = None
            shipment.delivered_at = None
        session.commit()

    except VialWorksError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error deleting box %s", box_id)
        raise RemoteError(f'Could not delete box: {e}')

    _aggregate(session, batch_id)


def update_shipment_status(session, shipment_id: int, status: str) -> Shipment:
    """Move a shipment to a new status and re-aggregate its batch."""
    status = clean_str(status)
    if status not in SHIPMENT_STATUSES:
        raise ValidationError('Invalid shipment status', [f'status must be one of {", ".join(SHIPMENT_STATUSES)}'])
    shipment = get_shipment(session, shipment_id)

    now = utcnow()
    shipment.status = status
    if status == ShipmentStatus.SHIPPED.value:
        shipment.shipped_at = shipment.shipped_at or now
        shipment.delivered_at = None
    elif status == ShipmentStatus.DELIVERED.value:
        shipment.shipped_at = shipment.shipped_at or now
        shipment.delivered_at = shipment.delivered_at or now
    else:
        shipment.shipped_at = None
        shipment.delivered_at = None
    session.commit()

    _aggregate(session, shipment.batch_id)
    return shipment
