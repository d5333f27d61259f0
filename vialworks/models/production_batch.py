"""Production Batch model."""
from sqlalchemy import Column, BigInteger, String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from vialworks.database import Base, PrimaryKeyType
from vialworks.utils.timeutils import utcnow
import enum


class BatchStatus(str, enum.Enum):
    """Production batch status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SaleType(str, enum.Enum):
    """How a batch's output is sold."""
    INDIVIDUAL = "individual"
    PACK = "pack"


class ProductionBatch(Base):
    """
    Production run of one vial type.

    quantity is always in base units (bottles), also for pack batches.
    """

    __tablename__ = 'production_batch'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    batch_number = Column(String(50), nullable=False, unique=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    vial_type_id = Column(BigInteger, ForeignKey('vial_type.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    sale_type = Column(String(20), nullable=False, default=SaleType.INDIVIDUAL.value)
    pack_quantity = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=BatchStatus.PENDING.value, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    shipped_units = Column(Integer, nullable=False, default=0)
    units_in_progress = Column(Integer, nullable=False, default=0)
    waste_quantity = Column(Integer, nullable=True)
    waste_notes = Column(Text, nullable=True)
    materials_deducted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    product = relationship('Product')
    vial_type = relationship('VialType')
    shipments = relationship('Shipment', back_populates='batch', order_by='Shipment.created_at')

    def __repr__(self):
        return f"<ProductionBatch(id={self.id}, batch_number='{self.batch_number}', status='{self.status}')>"

    @property
    def is_pack(self) -> bool:
        return self.sale_type == SaleType.PACK

    @property
    def pack_count(self) -> int:
        """Number of packs (or units, for individual batches)."""
        if self.is_pack and self.pack_quantity:
            return self.quantity // self.pack_quantity
        return self.quantity

    def to_dict(self):
        return {
            'id': self.id,
            'batch_number': self.batch_number,
            'product_id': self.product_id,
            'vial_type_id': self.vial_type_id,
            'quantity': self.quantity,
            'sale_type': self.sale_type,
            'pack_quantity': self.pack_quantity,
            'pack_count': self.pack_count,
            'status': self.status,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'shipped_units': self.shipped_units,
            'units_in_progress': self.units_in_progress,
            'waste_quantity': self.waste_quantity,
            'waste_notes': self.waste_notes,
            'materials_deducted': self.materials_deducted_at is not None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
