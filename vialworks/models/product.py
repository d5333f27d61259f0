"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, Integer, Text, DateTime
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType


class Product(Base):
    """Storefront product."""

    __tablename__ = 'product'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    sale_type = Column(String(20), nullable=False, default='individual')
    default_pack_size = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"
