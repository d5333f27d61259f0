"""Product Material (active-ingredient BOM) model."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from vialworks.database import Base, PrimaryKeyType


class ProductMaterial(Base):
    """Active ingredient required per one unit of a product."""

    __tablename__ = 'product_material'
    __table_args__ = (
        UniqueConstraint('product_id', 'material_id', name='uq_product_material'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    material_id = Column(BigInteger, ForeignKey('raw_material.id'), nullable=False)
    quantity_per_unit = Column(Numeric(14, 4), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    product = relationship('Product')
    material = relationship('RawMaterial')

    def __repr__(self):
        return f"<ProductMaterial(product_id={self.product_id}, material_id={self.material_id})>"
