"""
Bill of materials resolver.

Two separate BOMs exist and are never merged:
- VialTypeMaterial: packaging consumed per unit, per pack or per box of a vial type.
- ProductMaterial: active ingredient consumed per unit of a product.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from vialworks.models import (
    ApplicationType, Product, ProductMaterial, RawMaterial, VialType, VialTypeMaterial,
)
from vialworks.exceptions import BusinessLogicError, NotFoundError, ValidationError
from vialworks.services.dto import MaterialRequirement
from vialworks.utils.parsing import clean_str, parse_decimal, parse_int

logger = logging.getLogger(__name__)

APPLICATION_TYPES = tuple(t.value for t in ApplicationType)


def _requirement(material: RawMaterial, required: Decimal, application_type: Optional[str]) -> MaterialRequirement:
    return MaterialRequirement(
        material_id=material.id,
        material_name=material.name,
        required_quantity=required,
        stock_quantity=material.usage_to_stock(required),
        available_stock=Decimal(str(material.current_stock or 0)),
        unit=material.unit,
        application_type=application_type,
    )


def _multiplier(batch, application_type: str, box_count: Optional[int]) -> Optional[int]:
    if application_type == ApplicationType.PER_PACK.value:
        return batch.pack_count
    if application_type == ApplicationType.PER_BOX.value:
        return box_count
    return batch.quantity


def _vial_type_rows(session, vial_type_id: int, application_types=None) -> List[VialTypeMaterial]:
    query = session.query(VialTypeMaterial).filter(VialTypeMaterial.vial_type_id == vial_type_id)
    if application_types:
        query = query.filter(VialTypeMaterial.application_type.in_(application_types))
    return query.order_by(VialTypeMaterial.id).all()


def requirements_for_batch(session, batch, box_count: Optional[int] = None) -> List[MaterialRequirement]:
    """
    Packaging requirements of a production batch.

    per_unit rows scale with batch.quantity (base units), per_pack rows with
    the pack count and per_box rows with box_count. Without a box count the
    per_box rows are left out.
    """
    requirements = []
    for row in _vial_type_rows(session, batch.vial_type_id):
        multiplier = _multiplier(batch, row.application_type, box_count)
        if multiplier is None:
            continue
        material = row.material
        if material is None:
            logger.warning("BOM row %s references missing material %s", row.id, row.raw_material_id)
            continue
        required = Decimal(str(row.quantity_per_unit)) * Decimal(multiplier)
        if required <= 0:
            continue
        requirements.append(_requirement(material, required, row.application_type))
    return requirements


def requirements_for_boxes(session, vial_type_id: int, box_count: int = 1) -> List[MaterialRequirement]:
    """per_box packaging consumed by box_count boxes of a vial type."""
    requirements = []
    for row in _vial_type_rows(session, vial_type_id, [ApplicationType.PER_BOX.value]):
        material = row.material
        if material is None:
            logger.warning("BOM row %s references missing material %s", row.id, row.raw_material_id)
            continue
        required = Decimal(str(row.quantity_per_unit)) * Decimal(box_count)
        if required > 0:
            requirements.append(_requirement(material, required, row.application_type))
    return requirements


def product_requirements(session, product_id: int, quantity: int) -> List[MaterialRequirement]:
    """Active-ingredient requirements to make quantity units of a product."""
    rows = session.query(ProductMaterial).filter(
        ProductMaterial.product_id == product_id
    ).order_by(ProductMaterial.id).all()
    requirements = []
    for row in rows:
        if row.material is None:
            continue
        required = Decimal(str(row.quantity_per_unit)) * Decimal(quantity)
        requirements.append(_requirement(row.material, required, None))
    return requirements


# BOM maintenance

def list_vial_type_materials(session, vial_type_id: int) -> List[VialTypeMaterial]:
    if not session.query(VialType).filter(VialType.id == vial_type_id).first():
        raise NotFoundError(f'Vial type {vial_type_id} not found')
    return _vial_type_rows(session, vial_type_id)


def set_vial_type_material(session, vial_type_id: int, data: dict) -> VialTypeMaterial:
    """Create or update the packaging row for (vial type, material, application type)."""
    errors = []
    material_id = parse_int(data.get('raw_material_id') or data.get('material_id'), 'raw_material_id', errors)
    quantity = parse_decimal(data.get('quantity_per_unit'), 'quantity_per_unit', errors, allow_equal=False)
    application_type = clean_str(data.get('application_type')) or ApplicationType.PER_UNIT.value
    if application_type not in APPLICATION_TYPES:
        errors.append(f'application_type must be one of {", ".join(APPLICATION_TYPES)}')
    if errors:
        raise ValidationError('Invalid BOM data', errors)

    if not session.query(VialType).filter(VialType.id == vial_type_id).first():
        raise NotFoundError(f'Vial type {vial_type_id} not found')
    if not session.query(RawMaterial).filter(RawMaterial.id == material_id).first():
        raise NotFoundError(f'Material {material_id} not found')

    row = session.query(VialTypeMaterial).filter(
        VialTypeMaterial.vial_type_id == vial_type_id,
        VialTypeMaterial.raw_material_id == material_id,
        VialTypeMaterial.application_type == application_type,
    ).first()
    if row is None:
        row = VialTypeMaterial(vial_type_id=vial_type_id, raw_material_id=material_id,
                               application_type=application_type)
        session.add(row)
    row.quantity_per_unit = quantity
    row.notes = clean_str(data.get('notes'))
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise BusinessLogicError(f'Could not save BOM row: {e.orig}')
    return row


def remove_vial_type_material(session, vial_type_id: int, material_id: int,
                              application_type: Optional[str] = None) -> int:
    """Remove packaging rows of a material; returns the number removed."""
    query = session.query(VialTypeMaterial).filter(
        VialTypeMaterial.vial_type_id == vial_type_id,
        VialTypeMaterial.raw_material_id == material_id,
    )
    if application_type:
        query = query.filter(VialTypeMaterial.application_type == application_type)
    rows = query.all()
    if not rows:
        raise NotFoundError('BOM row not found')
    for row in rows:
        session.delete(row)
    session.commit()
    return len(rows)


def list_product_materials(session, product_id: int) -> List[ProductMaterial]:
    if not session.query(Product).filter(Product.id == product_id).first():
        raise NotFoundError(f'Product {product_id} not found')
    return session.query(ProductMaterial).filter(
        ProductMaterial.product_id == product_id
    ).order_by(ProductMaterial.id).all()


def set_product_material(session, product_id: int, data: dict) -> ProductMaterial:
    errors = []
    material_id = parse_int(data.get('material_id'), 'material_id', errors)
    quantity = parse_decimal(data.get('quantity_per_unit'), 'quantity_per_unit', errors, allow_equal=False)
    if errors:
        raise ValidationError('Invalid BOM data', errors)

    if not session.query(Product).filter(Product.id == product_id).first():
        raise NotFoundError(f'Product {product_id} not found')
    if not session.query(RawMaterial).filter(RawMaterial.id == material_id).first():
        raise NotFoundError(f'Material {material_id} not found')

    row = session.query(ProductMaterial).filter(
        ProductMaterial.product_id == product_id,
        ProductMaterial.material_id == material_id,
    ).first()
    if row is None:
        row = ProductMaterial(product_id=product_id, material_id=material_id)
        session.add(row)
    row.quantity_per_unit = quantity
    session.commit()
    return row


def remove_product_material(session, product_id: int, material_id: int):
    row = session.query(ProductMaterial).filter(
        ProductMaterial.product_id == product_id,
        ProductMaterial.material_id == material_id,
    ).first()
    if not row:
        raise NotFoundError('BOM row not found')
    session.delete(row)
    session.commit()


def serialize_vial_type_material(row: VialTypeMaterial) -> dict:
    return {
        'id': row.id,
        'vial_type_id': row.vial_type_id,
        'raw_material_id': row.raw_material_id,
        'material_name': row.material.name if row.material else None,
        'quantity_per_unit': str(row.quantity_per_unit),
        'application_type': row.application_type,
        'notes': row.notes,
    }


def serialize_product_material(row: ProductMaterial) -> dict:
    return {
        'id': row.id,
        'product_id': row.product_id,
        'material_id': row.material_id,
        'material_name': row.material.name if row.material else None,
        'quantity_per_unit': str(row.quantity_per_unit),
    }
