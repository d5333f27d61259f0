"""Vial Type Material (packaging BOM) model."""
from sqlalchemy import Column, BigInteger, String, Numeric, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType
import enum


class ApplicationType(str, enum.Enum):
    """Multiplier basis of a packaging material."""
    PER_UNIT = "per_unit"
    PER_PACK = "per_pack"
    PER_BOX = "per_box"


class VialTypeMaterial(Base):
    """Packaging material consumed by a vial type."""

    __tablename__ = 'vial_type_material'
    __table_args__ = (
        UniqueConstraint('vial_type_id', 'raw_material_id', 'application_type', name='uq_vial_type_material'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    vial_type_id = Column(BigInteger, ForeignKey('vial_type.id'), nullable=False, index=True)
    raw_material_id = Column(BigInteger, ForeignKey('raw_material.id'), nullable=False)
    quantity_per_unit = Column(Numeric(14, 4), nullable=False, default=1)
    application_type = Column(String(20), nullable=False, default=ApplicationType.PER_UNIT.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    vial_type = relationship('VialType', back_populates='materials')
    material = relationship('RawMaterial')

    def __repr__(self):
        return (
            f"<VialTypeMaterial(vial_type_id={self.vial_type_id}, "
            f"raw_material_id={self.raw_material_id}, application_type='{self.application_type}')>"
        )
