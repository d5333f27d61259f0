"""Unit of Measurement model."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType


class UnitOfMeasurement(Base):
    """Unit of measurement (purchase or usage unit of a material)."""

    __tablename__ = 'unit_of_measurement'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    abbreviation = Column(String(20), nullable=False)
    category = Column(String(50), nullable=False)  # weight, volume, count...
    base_unit_id = Column(BigInteger, ForeignKey('unit_of_measurement.id'), nullable=True)
    conversion_to_base = Column(Numeric(14, 6), nullable=True)
    is_base_unit = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<UnitOfMeasurement(id={self.id}, abbreviation='{self.abbreviation}')>"
