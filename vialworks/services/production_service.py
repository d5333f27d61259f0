"""
Production batch workflow.
Handles batch creation, editing, production start (material deduction),
material restore and cancellation.
"""
import logging
from datetime import date
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from vialworks.models import (
    BatchStatus, MovementReferenceType, Product, ProductionBatch, SaleType, VialType,
)
from vialworks.exceptions import (
    BusinessLogicError, NotFoundError, RemoteError, ValidationError, VialWorksError,
)
from vialworks.services import bom_service, inventory_service
from vialworks.utils.parsing import clean_str, parse_int
from vialworks.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

BATCH_STATUSES = tuple(s.value for s in BatchStatus)
SALE_TYPES = tuple(s.value for s in SaleType)


def _batch_prefix() -> str:
    if has_app_context():
        return current_app.config.get('BATCH_NUMBER_PREFIX', 'BATCH')
    return 'BATCH'


def generate_batch_number(session, today: Optional[date] = None) -> str:
    """Next free BATCH-YYYYMMDD-NNN number for the given day."""
    today = today or utcnow().date()
    stem = f"{_batch_prefix()}-{today.strftime('%Y%m%d')}-"
    sequence = session.query(ProductionBatch).filter(
        ProductionBatch.batch_number.like(f'{stem}%')
    ).count() + 1

    # Deleted or hand-numbered batches can leave gaps; skip taken numbers
    while True:
        candidate = f'{stem}{sequence:03d}'
        taken = session.query(ProductionBatch.id).filter(
            ProductionBatch.batch_number == candidate
        ).first()
        if not taken:
            return candidate
        sequence += 1


def get_batch(session, batch_id: int) -> ProductionBatch:
    batch = session.query(ProductionBatch).filter(ProductionBatch.id == batch_id).first()
    if not batch:
        raise NotFoundError(f'Batch {batch_id} not found')
    return batch


def list_batches(session, status: Optional[str] = None, vial_type_id: Optional[int] = None) -> List[ProductionBatch]:
    query = session.query(ProductionBatch)
    if status:
        query = query.filter(ProductionBatch.status == status)
    if vial_type_id:
        query = query.filter(ProductionBatch.vial_type_id == vial_type_id)
    return query.order_by(ProductionBatch.created_at.desc(), ProductionBatch.id.desc()).all()


def _parse_quantity(data: dict, errors: list, current: Optional[ProductionBatch] = None) -> dict:
    """
    Resolve sale type, pack size and base-unit quantity from form data.

    For pack batches the form carries the number of packs; quantity is
    stored in bottles (packs * units per pack).
    """
    sale_type = clean_str(data.get('sale_type')) or (current.sale_type if current else SaleType.INDIVIDUAL.value)
    if sale_type not in SALE_TYPES:
        errors.append(f'sale_type must be one of {", ".join(SALE_TYPES)}')
        return {}

    if sale_type == SaleType.PACK.value:
        units_per_pack = parse_int(
            data.get('pack_quantity', current.pack_quantity if current else None), 'pack_quantity', errors
        )
        packs = data.get('packs', data.get('quantity'))
        if packs is None and current is not None and current.pack_quantity:
            packs = current.quantity // current.pack_quantity
        packs = parse_int(packs, 'quantity', errors)
        if units_per_pack is None or packs is None:
            return {}
        return {'sale_type': sale_type, 'pack_quantity': units_per_pack, 'quantity': packs * units_per_pack}

    quantity = data.get('quantity')
    if quantity is None and current is not None:
        quantity = current.quantity
    quantity = parse_int(quantity, 'quantity', errors)
    if quantity is None:
        return {}
    return {'sale_type': sale_type, 'pack_quantity': None, 'quantity': quantity}


def create_batch(session, data: dict) -> ProductionBatch:
    """Create a pending batch. No materials are reserved until production starts."""
    errors = []
    vial_type_id = parse_int(data.get('vial_type_id'), 'vial_type_id', errors)
    product_id = parse_int(data.get('product_id'), 'product_id', errors, required=False)
    values = _parse_quantity(data, errors)
    if errors:
        raise ValidationError('Invalid batch data', errors)

    if not session.query(VialType).filter(VialType.id == vial_type_id).first():
        raise NotFoundError(f'Vial type {vial_type_id} not found')
    if product_id and not session.query(Product).filter(Product.id == product_id).first():
        raise NotFoundError(f'Product {product_id} not found')

    try:
        batch = ProductionBatch(
            batch_number=clean_str(data.get('batch_number')) or generate_batch_number(session),
            vial_type_id=vial_type_id,
            product_id=product_id,
            status=BatchStatus.PENDING.value,
            shipped_units=0,
            units_in_progress=0,
            **values
        )
        session.add(batch)
        session.commit()
        logger.info("Batch %s created: %s units (%s)", batch.batch_number, batch.quantity, batch.sale_type)
        return batch
    except SQLAlchemyError as e:
        session.rollback()
        raise BusinessLogicError(f'Could not create batch: {e}')


def update_batch(session, batch_id: int, data: dict) -> ProductionBatch:
    """
    Edit a batch.

    Quantity fields are re-denormalised to base units. Status accepts any of
    the four values with no transition check. Quantity cannot change once
    materials have been deducted, since restore must give back what start took.
    """
    batch = get_batch(session, batch_id)
    errors = []
    values = {}

    if any(k in data for k in ('quantity', 'packs', 'sale_type', 'pack_quantity')):
        values.update(_parse_quantity(data, errors, current=batch))
    if 'status' in data:
        status = clean_str(data.get('status'))
        if status not in BATCH_STATUSES:
            errors.append(f'status must be one of {", ".join(BATCH_STATUSES)}')
        values['status'] = status
    if 'waste_quantity' in data:
        values['waste_quantity'] = parse_int(data.get('waste_quantity'), 'waste_quantity', errors,
                                             required=False, min_value=0)
    if 'waste_notes' in data:
        values['waste_notes'] = clean_str(data.get('waste_notes'))
    if errors:
        raise ValidationError('Invalid batch data', errors)

    if batch.materials_deducted_at is not None:
        changed = [k for k in ('quantity', 'sale_type', 'pack_quantity')
                   if k in values and values[k] != getattr(batch, k)]
        if changed:
            raise BusinessLogicError(
                'Restore materials before changing the quantity of a batch in production'
            )

    for key, value in values.items():
        setattr(batch, key, value)
    if values.get('status') == BatchStatus.COMPLETED.value and not batch.completed_at:
        batch.completed_at = utcnow()
    session.commit()
    return batch


def start_production(session, batch_id: int) -> ProductionBatch:
    """
    Deduct the batch's packaging materials and mark it in progress.

    Every deduction and the status change commit together; a shortage on any
    material rolls everything back and the batch stays pending.
    """
    try:
        batch = get_batch(session, batch_id)
        if batch.status != BatchStatus.PENDING.value:
            raise BusinessLogicError(f'Only pending batches can be started (batch is {batch.status})')
        if batch.materials_deducted_at is not None:
            raise BusinessLogicError('Materials for this batch were already deducted')

        # 1. Resolve per-unit and per-pack packaging
        requirements = bom_service.requirements_for_batch(session, batch)

        # 2. Deduct everything or nothing
        inventory_service.deduct_requirements(
            session, requirements, MovementReferenceType.BATCH, batch.id,
            notes=f'Production start {batch.batch_number}',
        )

        # 3. Flip status
        now = utcnow()
        batch.status = BatchStatus.IN_PROGRESS.value
        batch.started_at = now
        batch.materials_deducted_at = now

        session.commit()
        logger.info("Production started for %s (%d materials deducted)", batch.batch_number, len(requirements))
        return batch

    except VialWorksError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error starting batch %s", batch_id)
        raise RemoteError(f'Could not start production: {e}')


def restore_materials(session, batch_id: int, commit: bool = True) -> ProductionBatch:
    """
    Give back the materials deducted by start_production.

    Requirements are re-resolved from the current BOM. A batch that was in
    progress goes back to pending.
    """
    try:
        batch = get_batch(session, batch_id)
        if batch.materials_deducted_at is None:
            raise BusinessLogicError('No materials have been deducted for this batch')

        requirements = bom_service.requirements_for_batch(session, batch)
        inventory_service.add_requirements(
            session, requirements, MovementReferenceType.BATCH, batch.id,
            notes=f'Materials restored {batch.batch_number}',
        )

        batch.materials_deducted_at = None
        if batch.status == BatchStatus.IN_PROGRESS.value:
            batch.status = BatchStatus.PENDING.value
            batch.started_at = None

        if commit:
            session.commit()
        logger.info("Materials restored for %s", batch.batch_number)
        return batch

    except VialWorksError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Database error restoring batch %s", batch_id)
        raise RemoteError(f'Could not restore materials: {e}')


def cancel_batch(session, batch_id: int) -> ProductionBatch:
    """Cancel a batch, returning its materials first when they were deducted."""
    batch = get_batch(session, batch_id)
    if batch.status in (BatchStatus.COMPLETED.value, BatchStatus.CANCELLED.value):
        raise BusinessLogicError(f'A {batch.status} batch cannot be cancelled')

    try:
        if batch.materials_deducted_at is not None:
            restore_materials(session, batch.id, commit=False)
        batch.status = BatchStatus.CANCELLED.value
        session.commit()
        logger.info("Batch %s cancelled", batch.batch_number)
        return batch
    except VialWorksError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        raise RemoteError(f'Could not cancel batch: {e}')


def batch_requirements(session, batch_id: int, box_count: Optional[int] = None) -> dict:
    """Requirement preview with availability for a batch."""
    batch = get_batch(session, batch_id)
    requirements = bom_service.requirements_for_batch(session, batch, box_count=box_count)
    available, shortages = inventory_service.check_materials_availability(session, requirements)
    data = {
        'batch_id': batch.id,
        'requirements': [r.to_dict() for r in requirements],
        'available': available,
        'shortages': shortages,
    }
    if batch.product_id:
        # Active ingredients are listed separately, never merged into packaging
        product_rows = bom_service.product_requirements(session, batch.product_id, batch.quantity)
        product_available, product_shortages = inventory_service.check_materials_availability(
            session, product_rows
        )
        data['product_requirements'] = [r.to_dict() for r in product_rows]
        data['product_available'] = product_available
        data['product_shortages'] = product_shortages
    return data


def serialize_batch(batch: ProductionBatch, include_shipments: bool = False) -> dict:
    data = batch.to_dict()
    data['vial_type_name'] = batch.vial_type.name if batch.vial_type else None
    data['product_name'] = batch.product.name if batch.product else None
    if include_shipments:
        data['shipments'] = [s.to_dict(include_boxes=True) for s in batch.shipments]
    return data
