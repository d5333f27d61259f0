"""Models package - exports all SQLAlchemy models."""
# Inventory
from vialworks.models.uom import UnitOfMeasurement
from vialworks.models.material_category import MaterialCategory
from vialworks.models.raw_material import RawMaterial
from vialworks.models.material_movement import MaterialMovement, MovementDirection, MovementReferenceType

# Bill of materials
from vialworks.models.product import Product
from vialworks.models.vial_type import VialType
from vialworks.models.product_material import ProductMaterial
from vialworks.models.vial_type_material import VialTypeMaterial, ApplicationType

# Production and shipping
from vialworks.models.production_batch import ProductionBatch, BatchStatus, SaleType
from vialworks.models.shipment import Shipment, ShipmentStatus
from vialworks.models.shipment_box import ShipmentBox

# Storefront
from vialworks.models.order import Order, OrderStatus
from vialworks.models.order_item import OrderItem

__all__ = [
    # Inventory
    'UnitOfMeasurement', 'MaterialCategory', 'RawMaterial',
    'MaterialMovement', 'MovementDirection', 'MovementReferenceType',
    # Bill of materials
    'Product', 'VialType', 'ProductMaterial', 'VialTypeMaterial', 'ApplicationType',
    # Production and shipping
    'ProductionBatch', 'BatchStatus', 'SaleType',
    'Shipment', 'ShipmentStatus', 'ShipmentBox',
    # Storefront
    'Order', 'OrderStatus', 'OrderItem',
]
