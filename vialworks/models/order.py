"""Order model."""
from sqlalchemy import Column, String, Numeric, DateTime, JSON
from sqlalchemy.orm import relationship
from vialworks.database import Base, PrimaryKeyType
from vialworks.utils.timeutils import utcnow
import enum


class OrderStatus(str, enum.Enum):
    """Storefront order status."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    EXCEPTION = "exception"
    CANCELLED = "cancelled"


class Order(Base):
    """Storefront order paid through a Stripe payment intent."""

    __tablename__ = 'customer_order'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    customer_email = Column(String, nullable=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='usd')
    shipping_address = Column(JSON, nullable=True)
    tracking_number = Column(String(64), nullable=True, index=True)
    payment_intent_id = Column(String(100), nullable=True, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status}', total_amount={self.total_amount})>"

    def to_dict(self):
        return {
            'id': self.id,
            'customer_email': self.customer_email,
            'status': self.status,
            'total_amount': str(self.total_amount),
            'shipping_cost': str(self.shipping_cost),
            'currency': self.currency,
            'shipping_address': self.shipping_address,
            'tracking_number': self.tracking_number,
            'payment_intent_id': self.payment_intent_id,
            'items': [item.to_dict() for item in self.items],
        }
