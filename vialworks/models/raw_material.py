"""Raw Material model."""
from decimal import Decimal
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType


class RawMaterial(Base):
    """
    Raw material held in inventory.

    current_stock is a running total expressed in purchase units.
    BOM quantities are expressed in usage units; qty_per_container
    is the number of usage units in one purchase unit.
    """

    __tablename__ = 'raw_material'
    __table_args__ = (
        CheckConstraint('current_stock >= 0', name='ck_raw_material_stock_non_negative'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    category = Column(String(100), nullable=False)
    unit = Column(String(20), nullable=False)
    current_stock = Column(Numeric(14, 4), nullable=False, default=0)
    min_stock_level = Column(Numeric(14, 4), nullable=False, default=0)
    cost_per_unit = Column(Numeric(10, 2), nullable=True)
    qty_per_container = Column(Numeric(14, 4), nullable=True)
    qty_per_box = Column(Numeric(14, 4), nullable=True)
    purchase_unit_id = Column(BigInteger, ForeignKey('unit_of_measurement.id'), nullable=True)
    usage_unit_id = Column(BigInteger, ForeignKey('unit_of_measurement.id'), nullable=True)
    dimension_length_in = Column(Numeric(8, 2), nullable=True)
    dimension_width_in = Column(Numeric(8, 2), nullable=True)
    dimension_height_in = Column(Numeric(8, 2), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    purchase_unit = relationship('UnitOfMeasurement', foreign_keys=[purchase_unit_id])
    usage_unit = relationship('UnitOfMeasurement', foreign_keys=[usage_unit_id])
    movements = relationship('MaterialMovement', back_populates='material', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<RawMaterial(id={self.id}, name='{self.name}', current_stock={self.current_stock})>"

    @property
    def conversion_factor(self) -> Decimal:
        """Usage units per purchase unit (1 when not configured)."""
        if self.qty_per_container:
            return Decimal(str(self.qty_per_container))
        return Decimal('1')

    def usage_to_stock(self, quantity) -> Decimal:
        """Convert a usage-unit quantity into stock (purchase) units."""
        return Decimal(str(quantity)) / self.conversion_factor

    @property
    def stock_in_usage_units(self) -> Decimal:
        return Decimal(str(self.current_stock or 0)) * self.conversion_factor

    def is_low_stock(self, factor=1) -> bool:
        threshold = Decimal(str(self.min_stock_level or 0)) * Decimal(str(factor))
        return Decimal(str(self.current_stock or 0)) <= threshold

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'unit': self.unit,
            'current_stock': str(self.current_stock),
            'min_stock_level': str(self.min_stock_level),
            'cost_per_unit': str(self.cost_per_unit) if self.cost_per_unit is not None else None,
            'qty_per_container': str(self.qty_per_container) if self.qty_per_container is not None else None,
            'purchase_unit_id': self.purchase_unit_id,
            'usage_unit_id': self.usage_unit_id,
        }
