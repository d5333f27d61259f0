"""Shipment Box model."""
from sqlalchemy import Column, BigInteger, String, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from vialworks.database import Base, PrimaryKeyType
from vialworks.utils.timeutils import utcnow


class ShipmentBox(Base):
    """Physical packing unit inside a shipment."""

    __tablename__ = 'shipment_box'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    shipment_id = Column(BigInteger, ForeignKey('shipment.id'), nullable=False, index=True)
    box_number = Column(Integer, nullable=False)
    packs_per_box = Column(Integer, nullable=True)
    bottles_per_box = Column(Integer, nullable=True)
    weight_lb = Column(Numeric(8, 2), nullable=True)
    dimension_length_in = Column(Numeric(8, 2), nullable=True)
    dimension_width_in = Column(Numeric(8, 2), nullable=True)
    dimension_height_in = Column(Numeric(8, 2), nullable=True)
    destination = Column(String, nullable=True)
    tracking_number = Column(String(64), nullable=True, index=True)
    fba_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    shipment = relationship('Shipment', back_populates='boxes')

    def __repr__(self):
        return f"<ShipmentBox(id={self.id}, shipment_id={self.shipment_id}, box_number={self.box_number})>"

    def units_for(self, sale_type) -> int:
        """Units this box contributes to a batch of the given sale type."""
        if sale_type == 'pack':
            return self.packs_per_box or 0
        return self.bottles_per_box or 0

    def to_dict(self):
        return {
            'id': self.id,
            'shipment_id': self.shipment_id,
            'box_number': self.box_number,
            'packs_per_box': self.packs_per_box,
            'bottles_per_box': self.bottles_per_box,
            'weight_lb': str(self.weight_lb) if self.weight_lb is not None else None,
            'dimensions': {
                'length_in': str(self.dimension_length_in) if self.dimension_length_in is not None else None,
                'width_in': str(self.dimension_width_in) if self.dimension_width_in is not None else None,
                'height_in': str(self.dimension_height_in) if self.dimension_height_in is not None else None,
            },
            'destination': self.destination,
            'tracking_number': self.tracking_number,
            'fba_id': self.fba_id,
        }
