"""Order Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from vialworks.database import Base, PrimaryKeyType


class OrderItem(Base):
    """Order line priced at checkout time."""

    __tablename__ = 'order_item'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('customer_order.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    quantity = Column(Integer, nullable=False)
    price_at_time = Column(Numeric(10, 2), nullable=False)

    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'quantity': self.quantity,
            'price_at_time': str(self.price_at_time),
        }
