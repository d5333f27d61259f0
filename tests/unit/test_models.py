"""
Unit tests for SQLAlchemy models.
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError
from vialworks.models import MaterialCategory, ProductionBatch, RawMaterial, ShipmentBox


class TestRawMaterialModel:
    """Tests for RawMaterial model."""

    def test_create_material(self, session):
        """Test creating a material."""
        material = RawMaterial(name='Crimp cap', category='Caps', unit='ea',
                               current_stock=Decimal('10'), min_stock_level=Decimal('2'))
        session.add(material)
        session.commit()

        assert material.id is not None
        assert material.current_stock == Decimal('10')

    def test_stock_cannot_be_negative(self, session):
        """The check constraint rejects negative stock."""
        material = RawMaterial(name='Broken', category='Caps', unit='ea',
                               current_stock=Decimal('-1'), min_stock_level=Decimal('0'))
        session.add(material)

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_usage_to_stock_conversion(self, make_material):
        """Usage quantities divide by qty_per_container."""
        label = make_material(name='Label roll', stock='5', qty_per_container=Decimal('500'))

        assert label.usage_to_stock(250) == Decimal('0.5')
        assert label.stock_in_usage_units == Decimal('2500')

    def test_conversion_factor_defaults_to_one(self, material):
        assert material.conversion_factor == Decimal('1')
        assert material.usage_to_stock(7) == Decimal('7')

    def test_is_low_stock(self, make_material):
        low = make_material(name='Low', stock='5', min_stock='5')
        ok = make_material(name='Ok', stock='6', min_stock='5')

        assert low.is_low_stock() is True
        assert ok.is_low_stock() is False
        assert ok.is_low_stock(factor=2) is True


class TestMaterialCategoryModel:
    """Tests for MaterialCategory model."""

    def test_category_name_unique(self, session):
        """Test that category name must be unique."""
        session.add(MaterialCategory(name='Vials', active=True))
        session.commit()
        session.add(MaterialCategory(name='Vials', active=True))

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()


class TestProductionBatchModel:
    """Tests for ProductionBatch model."""

    def test_pack_count_for_pack_batch(self, pack_batch):
        assert pack_batch.is_pack is True
        assert pack_batch.pack_count == 10

    def test_pack_count_for_individual_batch(self, batch):
        assert batch.is_pack is False
        assert batch.pack_count == 100

    def test_batch_number_unique(self, session, batch, vial_type):
        session.add(ProductionBatch(batch_number=batch.batch_number, vial_type_id=vial_type.id, quantity=1))

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_to_dict(self, batch):
        data = batch.to_dict()

        assert data['status'] == 'pending'
        assert data['quantity'] == 100
        assert data['materials_deducted'] is False


class TestShipmentBoxModel:
    """Tests for ShipmentBox model."""

    def test_units_follow_sale_type(self):
        box = ShipmentBox(box_number=1, packs_per_box=4, bottles_per_box=24)

        assert box.units_for('pack') == 4
        assert box.units_for('individual') == 24

    def test_missing_units_count_as_zero(self):
        box = ShipmentBox(box_number=1)

        assert box.units_for('pack') == 0
        assert box.units_for('individual') == 0
