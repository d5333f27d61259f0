"""Shipment model."""
from sqlalchemy import Column, BigInteger, String, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from vialworks.database import Base, PrimaryKeyType
from vialworks.utils.timeutils import utcnow
import enum


class ShipmentStatus(str, enum.Enum):
    """Shipment status."""
    PREPARING = "preparing"
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class Shipment(Base):
    """Shipment dispatched against a production batch."""

    __tablename__ = 'shipment'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    shipment_number = Column(String(50), nullable=False, unique=True)
    batch_id = Column(BigInteger, ForeignKey('production_batch.id'), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=ShipmentStatus.PREPARING.value)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    delivery_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    batch = relationship('ProductionBatch', back_populates='shipments')
    boxes = relationship('ShipmentBox', back_populates='shipment', cascade='all, delete-orphan',
                         order_by='ShipmentBox.box_number')

    def __repr__(self):
        return f"<Shipment(id={self.id}, shipment_number='{self.shipment_number}', status='{self.status}')>"

    def to_dict(self, include_boxes=False):
        data = {
            'id': self.id,
            'shipment_number': self.shipment_number,
            'batch_id': self.batch_id,
            'status': self.status,
            'shipped_at': self.shipped_at.isoformat() if self.shipped_at else None,
            'delivered_at': self.delivered_at.isoformat() if self.delivered_at else None,
            'delivery_date': self.delivery_date.isoformat() if self.delivery_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_boxes:
            data['boxes'] = [box.to_dict() for box in self.boxes]
        return data
