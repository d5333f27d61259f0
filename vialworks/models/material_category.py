"""Material Category model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType


class MaterialCategory(Base):
    """Raw material category. Disabled instead of deleted."""

    __tablename__ = 'material_category'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<MaterialCategory(id={self.id}, name='{self.name}', active={self.active})>"
