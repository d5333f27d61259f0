"""
Material ledger service.
Owns every change to raw material stock and writes a movement row for each one.
"""
import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from vialworks.models import (
    RawMaterial, MaterialCategory, MaterialMovement,
    MovementDirection, MovementReferenceType,
)
from vialworks.exceptions import (
    BusinessLogicError, InsufficientStockError, NotFoundError, RemoteError, ValidationError,
)
from vialworks.services.dto import MaterialRequirement
from vialworks.utils.parsing import clean_str, parse_decimal, parse_int

logger = logging.getLogger(__name__)

DIRECTION_ADD = 'add'
DIRECTION_DEDUCT = 'deduct'


def _get_material(session, material_id: int, lock: bool = False) -> RawMaterial:
    query = session.query(RawMaterial).filter(RawMaterial.id == material_id)
    if lock:
        query = query.with_for_update()
    material = query.first()
    if not material:
        raise NotFoundError(f'Material {material_id} not found')
    return material


def get_stock(session, material_id: int) -> Decimal:
    """Current stock of a material, in purchase units."""
    material = _get_material(session, material_id)
    return Decimal(str(material.current_stock or 0))


def _apply_adjustment(session, material_id, quantity: Decimal, direction: str,
                      reference_type, reference_id, notes) -> Decimal:
    """Adjust stock and record the movement without committing."""
    material = _get_material(session, material_id, lock=True)
    current = Decimal(str(material.current_stock or 0))

    if direction == DIRECTION_DEDUCT:
        if current - quantity < 0:
            raise InsufficientStockError(material.name, quantity, current, material_id=material.id)
        # Guarded write: a concurrent deduction that drained the stock matches no row
        result = session.execute(
            update(RawMaterial)
            .where(RawMaterial.id == material.id, RawMaterial.current_stock >= quantity)
            .values(current_stock=RawMaterial.current_stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.expire(material, ['current_stock'])
            raise InsufficientStockError(
                material.name, quantity, Decimal(str(material.current_stock or 0)), material_id=material.id
            )
        movement_direction = MovementDirection.OUT.value
    else:
        session.execute(
            update(RawMaterial)
            .where(RawMaterial.id == material.id)
            .values(current_stock=RawMaterial.current_stock + quantity)
            .execution_options(synchronize_session=False)
        )
        movement_direction = MovementDirection.IN.value

    session.expire(material, ['current_stock'])
    new_stock = Decimal(str(material.current_stock))

    session.add(MaterialMovement(
        raw_material_id=material.id,
        direction=movement_direction,
        quantity=quantity,
        resulting_stock=new_stock,
        reference_type=getattr(reference_type, 'value', reference_type),
        reference_id=reference_id,
        notes=notes,
    ))
    session.flush()
    return new_stock


def adjust_stock(session, material_id: int, quantity, direction: str,
                 reference_type=MovementReferenceType.MANUAL, reference_id: Optional[int] = None,
                 notes: Optional[str] = None, commit: bool = True) -> Decimal:
    """
    Add or deduct stock for one material.

    A deduction that would take the stock below zero raises
    InsufficientStockError and leaves the stock untouched.
    Returns the new stock level.
    """
    if direction not in (DIRECTION_ADD, DIRECTION_DEDUCT):
        raise ValidationError(f'Unknown stock direction: {direction}')
    try:
        quantity = Decimal(str(quantity))
    except ArithmeticError:
        raise ValidationError('Quantity must be a number')
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError('Quantity must be greater than 0')

    try:
        new_stock = _apply_adjustment(session, material_id, quantity, direction,
                                      reference_type, reference_id, notes)
        if commit:
            session.commit()
        logger.info("Material %s %s %s, stock now %s", material_id, direction, quantity, new_stock)
        return new_stock
    except (BusinessLogicError, NotFoundError):
        if commit:
            session.rollback()
        raise
    except SQLAlchemyError as e:
        if commit:
            session.rollback()
        logger.exception("Database error adjusting stock of material %s", material_id)
        raise RemoteError(f'Could not adjust stock: {e}')


def add_material_stock(session, material_id: int, quantity, notes: Optional[str] = None) -> Decimal:
    """Receive purchased stock (purchase units)."""
    return adjust_stock(session, material_id, quantity, DIRECTION_ADD,
                        reference_type=MovementReferenceType.MANUAL, notes=notes or 'Stock received')


def _group_by_material(requirements: Iterable[MaterialRequirement]) -> "OrderedDict[int, Tuple[str, Decimal]]":
    grouped = OrderedDict()
    for req in requirements:
        name, qty = grouped.get(req.material_id, (req.material_name, Decimal('0')))
        grouped[req.material_id] = (name, qty + Decimal(str(req.stock_quantity)))
    return grouped


def check_materials_availability(session, requirements: Iterable[MaterialRequirement]) -> Tuple[bool, List[Dict]]:
    """
    Check whether current stock covers every requirement.

    Requirements for the same material are summed first.
    Returns (all_available, shortages).
    """
    shortages = []
    grouped = _group_by_material(requirements)
    if not grouped:
        return True, shortages

    materials = {
        m.id: m for m in session.query(RawMaterial).filter(RawMaterial.id.in_(list(grouped.keys()))).all()
    }
    for material_id, (name, required) in grouped.items():
        material = materials.get(material_id)
        available = Decimal(str(material.current_stock or 0)) if material else Decimal('0')
        if available < required:
            shortages.append({
                'material_id': material_id,
                'material_name': material.name if material else name,
                'required': str(required),
                'available': str(available),
                'shortfall': str(required - available),
            })
    return not shortages, shortages


def _raise_for_shortages(shortages: List[Dict]):
    first = shortages[0]
    raise InsufficientStockError(
        first['material_name'], Decimal(first['required']), Decimal(first['available']),
        material_id=first['material_id'], shortages=shortages,
    )


def deduct_requirements(session, requirements: Iterable[MaterialRequirement],
                        reference_type, reference_id: Optional[int], notes: Optional[str] = None) -> Dict[int, Decimal]:
    """
    Deduct a set of requirements inside the caller's transaction.

    Every material is checked before the first write so a shortage
    reports all missing materials at once. The caller commits or rolls back.
    """
    requirements = list(requirements)
    ok, shortages = check_materials_availability(session, requirements)
    if not ok:
        _raise_for_shortages(shortages)

    new_levels = {}
    for material_id, (_name, quantity) in _group_by_material(requirements).items():
        if quantity <= 0:
            continue
        new_levels[material_id] = _apply_adjustment(
            session, material_id, quantity, DIRECTION_DEDUCT, reference_type, reference_id, notes
        )
    return new_levels


def add_requirements(session, requirements: Iterable[MaterialRequirement],
                     reference_type, reference_id: Optional[int], notes: Optional[str] = None) -> Dict[int, Decimal]:
    """Return a set of requirements to stock inside the caller's transaction."""
    new_levels = {}
    for material_id, (_name, quantity) in _group_by_material(requirements).items():
        if quantity <= 0:
            continue
        new_levels[material_id] = _apply_adjustment(
            session, material_id, quantity, DIRECTION_ADD, reference_type, reference_id, notes
        )
    return new_levels


def _low_stock_factor() -> float:
    if has_app_context():
        return current_app.config.get('LOW_STOCK_THRESHOLD_FACTOR', 1)
    return 1


def get_low_stock_materials(session, factor: Optional[float] = None) -> List[RawMaterial]:
    """Materials at or below their minimum level (scaled by the configured factor)."""
    factor = Decimal(str(factor if factor is not None else _low_stock_factor()))
    return session.query(RawMaterial).filter(
        RawMaterial.current_stock <= RawMaterial.min_stock_level * factor
    ).order_by(RawMaterial.name).all()


def list_materials(session, category: Optional[str] = None, search: Optional[str] = None) -> List[RawMaterial]:
    query = session.query(RawMaterial)
    if category:
        query = query.filter(RawMaterial.category == category)
    if search:
        query = query.filter(RawMaterial.name.ilike(f'%{search}%'))
    return query.order_by(RawMaterial.name).all()


def get_material(session, material_id: int) -> RawMaterial:
    return _get_material(session, material_id)


def _validate_material_form(data: dict, partial: bool = False) -> dict:
    errors = []
    values = {}

    if not partial or 'name' in data:
        name = clean_str(data.get('name'))
        if not name:
            errors.append('name is required')
        values['name'] = name
    if not partial or 'category' in data:
        category = clean_str(data.get('category'))
        if not category:
            errors.append('category is required')
        values['category'] = category
    if not partial or 'unit' in data:
        unit = clean_str(data.get('unit'))
        if not unit:
            errors.append('unit is required')
        values['unit'] = unit

    for field, required in (('current_stock', False), ('min_stock_level', False), ('cost_per_unit', False),
                            ('qty_per_box', False), ('dimension_length_in', False),
                            ('dimension_width_in', False), ('dimension_height_in', False)):
        if field in data:
            values[field] = parse_decimal(data.get(field), field, errors, required=required)
    if 'qty_per_container' in data:
        values['qty_per_container'] = parse_decimal(
            data.get('qty_per_container'), 'qty_per_container', errors, required=False, allow_equal=False
        )
    for field in ('purchase_unit_id', 'usage_unit_id'):
        if field in data:
            values[field] = parse_int(data.get(field), field, errors, required=False)

    if errors:
        raise ValidationError('Invalid material data', errors)
    return values


def _check_category(session, name: Optional[str]):
    if not name:
        return
    known = session.query(MaterialCategory).count()
    if not known:
        # No managed categories yet: accept free text
        return
    category = session.query(MaterialCategory).filter(MaterialCategory.name == name).first()
    if not category or not category.active:
        raise ValidationError('Invalid material data', [f'category "{name}" is not an active category'])


def create_material(session, data: dict) -> RawMaterial:
    """Create a raw material. Opening stock is booked as a manual movement."""
    values = _validate_material_form(data)
    _check_category(session, values.get('category'))
    opening_stock = values.pop('current_stock', None) or Decimal('0')

    try:
        material = RawMaterial(current_stock=Decimal('0'), **values)
        if material.min_stock_level is None:
            material.min_stock_level = Decimal('0')
        session.add(material)
        session.flush()
        if opening_stock > 0:
            _apply_adjustment(session, material.id, opening_stock, DIRECTION_ADD,
                              MovementReferenceType.MANUAL, None, 'Opening stock')
        session.commit()
        logger.info("Material created: %s (%s)", material.name, material.id)
        return material
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise BusinessLogicError(f'Could not create material: {e.orig}')


def update_material(session, material_id: int, data: dict) -> RawMaterial:
    """
    Update material attributes.

    A changed current_stock is written through the ledger as a manual
    movement so the history stays complete.
    """
    material = _get_material(session, material_id)
    values = _validate_material_form(data, partial=True)
    if 'category' in values:
        _check_category(session, values['category'])
    target_stock = values.pop('current_stock', None)

    try:
        for key, value in values.items():
            setattr(material, key, value)
        session.flush()

        if target_stock is not None:
            current = Decimal(str(material.current_stock or 0))
            delta = target_stock - current
            if delta > 0:
                _apply_adjustment(session, material.id, delta, DIRECTION_ADD,
                                  MovementReferenceType.MANUAL, None, 'Stock correction')
            elif delta < 0:
                _apply_adjustment(session, material.id, -delta, DIRECTION_DEDUCT,
                                  MovementReferenceType.MANUAL, None, 'Stock correction')
        session.commit()
        return material
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise BusinessLogicError(f'Could not update material: {e.orig}')


def list_movements(session, material_id: int, limit: int = 100) -> List[MaterialMovement]:
    _get_material(session, material_id)
    return session.query(MaterialMovement).filter(
        MaterialMovement.raw_material_id == material_id
    ).order_by(MaterialMovement.created_at.desc(), MaterialMovement.id.desc()).limit(limit).all()


# Categories

def list_categories(session, include_inactive: bool = False) -> List[MaterialCategory]:
    query = session.query(MaterialCategory)
    if not include_inactive:
        query = query.filter(MaterialCategory.active.is_(True))
    return query.order_by(MaterialCategory.name).all()


def create_category(session, name) -> MaterialCategory:
    name = clean_str(name)
    if not name:
        raise ValidationError('Invalid category', ['name is required'])
    existing = session.query(MaterialCategory).filter(MaterialCategory.name == name).first()
    if existing:
        raise BusinessLogicError(f'Category "{name}" already exists')
    category = MaterialCategory(name=name, active=True)
    session.add(category)
    session.commit()
    return category


def set_category_active(session, category_id: int, active: bool) -> MaterialCategory:
    category = session.query(MaterialCategory).filter(MaterialCategory.id == category_id).first()
    if not category:
        raise NotFoundError(f'Category {category_id} not found')
    category.active = bool(active)
    session.commit()
    return category
