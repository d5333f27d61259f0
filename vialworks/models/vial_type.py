"""Vial Type model."""
from sqlalchemy import Column, String, Boolean, Numeric, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType


class VialType(Base):
    """Container type a batch is filled into."""

    __tablename__ = 'vial_type'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    size_ml = Column(Numeric(8, 2), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    materials = relationship('VialTypeMaterial', back_populates='vial_type', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<VialType(id={self.id}, name='{self.name}', size_ml={self.size_ml})>"
