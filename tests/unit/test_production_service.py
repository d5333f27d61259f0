"""
Unit tests for the production batch workflow.
"""

import pytest
from datetime import date
from decimal import Decimal
from vialworks.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError, ValidationError
from vialworks.models import MaterialMovement, ProductMaterial
from vialworks.services import inventory_service, production_service


class TestBatchNumbers:
    """Tests for generate_batch_number."""

    def test_first_of_day(self, session):
        assert production_service.generate_batch_number(session, date(2024, 3, 5)) == 'BATCH-20240305-001'

    def test_sequence_counts_existing(self, session, vial_type, make_batch):
        make_batch(vial_type, batch_number='BATCH-20240305-001')
        make_batch(vial_type, batch_number='BATCH-20240305-002')

        assert production_service.generate_batch_number(session, date(2024, 3, 5)) == 'BATCH-20240305-003'


class TestCreateBatch:
    """Tests for create_batch."""

    def test_individual_batch(self, session, vial_type):
        batch = production_service.create_batch(session, {'vial_type_id': vial_type.id, 'quantity': '50'})

        assert batch.status == 'pending'
        assert batch.quantity == 50
        assert batch.pack_quantity is None
        assert batch.batch_number.startswith('BATCH-')

    def test_pack_batch_stores_base_units(self, session, vial_type):
        batch = production_service.create_batch(session, {
            'vial_type_id': vial_type.id, 'sale_type': 'pack', 'quantity': 10, 'pack_quantity': 6,
        })

        assert batch.quantity == 60
        assert batch.pack_quantity == 6
        assert batch.pack_count == 10

    def test_create_reserves_nothing(self, session, vial_type, per_unit_bom, material):
        production_service.create_batch(session, {'vial_type_id': vial_type.id, 'quantity': 100})

        assert inventory_service.get_stock(session, material.id) == Decimal('300')

    def test_validation(self, session, vial_type):
        with pytest.raises(ValidationError) as exc_info:
            production_service.create_batch(session, {'vial_type_id': vial_type.id, 'quantity': '0'})

        assert 'quantity must be at least 1' in exc_info.value.errors

    def test_unknown_vial_type(self, session):
        with pytest.raises(NotFoundError):
            production_service.create_batch(session, {'vial_type_id': 42, 'quantity': 1})


class TestUpdateBatch:
    """Tests for update_batch."""

    def test_redenormalises_pack_quantity(self, session, pack_batch):
        batch = production_service.update_batch(session, pack_batch.id, {'quantity': 5})

        assert batch.quantity == 30
        assert batch.pack_count == 5

    def test_switch_to_individual_clears_pack_quantity(self, session, pack_batch):
        batch = production_service.update_batch(session, pack_batch.id, {'sale_type': 'individual', 'quantity': 40})

        assert batch.pack_quantity is None
        assert batch.quantity == 40

    def test_status_without_transition_guard(self, session, batch):
        batch = production_service.update_batch(session, batch.id, {'status': 'completed'})

        assert batch.status == 'completed'
        assert batch.completed_at is not None

    def test_invalid_status(self, session, batch):
        with pytest.raises(ValidationError):
            production_service.update_batch(session, batch.id, {'status': 'shipped'})

    def test_quantity_locked_after_deduction(self, session, batch, per_unit_bom):
        production_service.start_production(session, batch.id)

        with pytest.raises(BusinessLogicError):
            production_service.update_batch(session, batch.id, {'quantity': 120})


class TestStartProduction:
    """Tests for start_production."""

    def test_insufficient_stock_rolls_back(self, session, batch, vial_type, make_material, add_bom_row):
        material = make_material(name='M', stock='150')
        add_bom_row(vial_type, material, quantity='2')

        with pytest.raises(InsufficientStockError):
            production_service.start_production(session, batch.id)

        assert inventory_service.get_stock(session, material.id) == Decimal('150')
        assert batch.status == 'pending'
        assert batch.started_at is None
        assert session.query(MaterialMovement).count() == 0

    def test_start_deducts_and_flips_status(self, session, batch, per_unit_bom, material):
        started = production_service.start_production(session, batch.id)

        assert inventory_service.get_stock(session, material.id) == Decimal('100')
        assert started.status == 'in_progress'
        assert started.started_at is not None
        assert started.materials_deducted_at is not None

    def test_partial_shortage_deducts_nothing(self, session, batch, vial_type, per_unit_bom, material,
                                              make_material, add_bom_row):
        caps = make_material(name='Caps', stock='10')
        add_bom_row(vial_type, caps, quantity='1')

        with pytest.raises(InsufficientStockError):
            production_service.start_production(session, batch.id)

        assert inventory_service.get_stock(session, material.id) == Decimal('300')
        assert inventory_service.get_stock(session, caps.id) == Decimal('10')

    def test_only_pending_batches_start(self, session, vial_type, make_batch):
        batch = make_batch(vial_type, status='completed')

        with pytest.raises(BusinessLogicError):
            production_service.start_production(session, batch.id)

    def test_cannot_start_twice(self, session, batch, per_unit_bom):
        production_service.start_production(session, batch.id)

        with pytest.raises(BusinessLogicError):
            production_service.start_production(session, batch.id)


class TestRestoreMaterials:
    """Tests for restore_materials and cancel_batch."""

    def test_restore_is_inverse_of_start(self, session, batch, vial_type, per_unit_bom, material,
                                         make_material, add_bom_row):
        insert = make_material(name='Insert', stock='55')
        add_bom_row(vial_type, insert, quantity='0.5')
        before = {m.id: inventory_service.get_stock(session, m.id) for m in (material, insert)}

        production_service.start_production(session, batch.id)
        production_service.restore_materials(session, batch.id)

        after = {m.id: inventory_service.get_stock(session, m.id) for m in (material, insert)}
        assert after == before
        assert batch.status == 'pending'
        assert batch.materials_deducted_at is None

    def test_restore_without_deduction(self, session, batch):
        with pytest.raises(BusinessLogicError):
            production_service.restore_materials(session, batch.id)

    def test_cancel_restores_materials(self, session, batch, per_unit_bom, material):
        production_service.start_production(session, batch.id)

        cancelled = production_service.cancel_batch(session, batch.id)

        assert cancelled.status == 'cancelled'
        assert inventory_service.get_stock(session, material.id) == Decimal('300')

    def test_cancel_pending_batch(self, session, batch, per_unit_bom, material):
        assert production_service.cancel_batch(session, batch.id).status == 'cancelled'
        assert inventory_service.get_stock(session, material.id) == Decimal('300')

    def test_cancel_completed_refused(self, session, vial_type, make_batch):
        batch = make_batch(vial_type, status='completed')

        with pytest.raises(BusinessLogicError):
            production_service.cancel_batch(session, batch.id)


class TestBatchRequirements:
    """Tests for the requirement preview."""

    def test_packaging_only_without_product(self, session, batch, per_unit_bom):
        preview = production_service.batch_requirements(session, batch.id)

        assert preview['available'] is True
        assert len(preview['requirements']) == 1
        assert 'product_requirements' not in preview

    def test_product_ingredients_listed_separately(self, session, batch, per_unit_bom, product, make_material):
        serum = make_material(name='Serum base', stock='500', unit='ml')
        session.add(ProductMaterial(product_id=product.id, material_id=serum.id,
                                    quantity_per_unit=Decimal('10')))
        batch.product_id = product.id
        session.commit()

        preview = production_service.batch_requirements(session, batch.id)

        assert [r['material_id'] for r in preview['requirements']] == [per_unit_bom.raw_material_id]
        assert [r['material_id'] for r in preview['product_requirements']] == [serum.id]
        assert preview['product_available'] is False
        assert Decimal(preview['product_shortages'][0]['shortfall']) == Decimal('500')
