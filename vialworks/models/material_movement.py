"""Material Movement model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from vialworks.database import Base, PrimaryKeyType
from vialworks.utils.timeutils import utcnow
import enum


class MovementDirection(str, enum.Enum):
    """Direction of a stock change."""
    IN = "IN"
    OUT = "OUT"


class MovementReferenceType(str, enum.Enum):
    """What caused a stock change."""
    BATCH = "BATCH"
    BOX = "BOX"
    MANUAL = "MANUAL"


class MaterialMovement(Base):
    """One stock change of a raw material (history only, stock lives on RawMaterial)."""

    __tablename__ = 'material_movement'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    raw_material_id = Column(BigInteger, ForeignKey('raw_material.id'), nullable=False, index=True)
    direction = Column(String(3), nullable=False)
    quantity = Column(Numeric(14, 4), nullable=False)
    resulting_stock = Column(Numeric(14, 4), nullable=False)
    reference_type = Column(String(20), nullable=False, default=MovementReferenceType.MANUAL.value)
    reference_id = Column(BigInteger, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    material = relationship('RawMaterial', back_populates='movements')

    def __repr__(self):
        return f"<MaterialMovement(id={self.id}, direction={self.direction}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'raw_material_id': self.raw_material_id,
            'direction': self.direction,
            'quantity': str(self.quantity),
            'resulting_stock': str(self.resulting_stock),
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
