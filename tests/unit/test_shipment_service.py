"""
Unit tests for shipments and the batch status aggregator.
"""

import pytest
from datetime import datetime
from decimal import Decimal
from vialworks.exceptions import BusinessLogicError, InsufficientStockError, ValidationError
from vialworks.models import ApplicationType, Shipment, ShipmentBox
from vialworks.services import inventory_service, production_service, shipment_service
from vialworks.services.shipment_service import derive_batch_status


def _shipment(session, batch, status, created_at=None, boxes=()):
    shipment = Shipment(
        shipment_number=f'SHP-T-{session.query(Shipment).count() + 1}',
        batch_id=batch.id,
        status=status,
        created_at=created_at or datetime(2024, 1, 1, 12, 0),
    )
    session.add(shipment)
    session.flush()
    for number, (packs, bottles) in enumerate(boxes, start=1):
        session.add(ShipmentBox(shipment_id=shipment.id, box_number=number,
                                packs_per_box=packs, bottles_per_box=bottles))
    session.commit()
    return shipment


class TestDeriveBatchStatus:
    """Tests for the pure status rule."""

    def test_no_shipments_is_pending(self):
        assert derive_batch_status('in_progress', []) == 'pending'

    def test_all_delivered_is_completed(self):
        assert derive_batch_status('in_progress', ['delivered', 'delivered']) == 'completed'

    def test_open_shipment_wins_over_delivered(self):
        assert derive_batch_status('in_progress', ['delivered', 'pending']) == 'in_progress'
        assert derive_batch_status('pending', ['delivered', 'preparing']) == 'in_progress'

    def test_shipped_mix_keeps_current(self):
        assert derive_batch_status('in_progress', ['shipped', 'delivered']) == 'in_progress'
        assert derive_batch_status('pending', ['shipped']) == 'pending'


class TestUpdateBatchStatus:
    """Tests for update_batch_status."""

    def test_zero_shipments(self, session, batch):
        result = shipment_service.update_batch_status(session, batch.id)

        assert result.ok is True
        assert batch.status == 'pending'
        assert batch.shipped_units == 0
        assert batch.units_in_progress == 0

    def test_started_batch_without_shipments_stays_in_progress(self, session, batch, per_unit_bom):
        production_service.start_production(session, batch.id)

        result = shipment_service.update_batch_status(session, batch.id)

        assert result.value.status == 'in_progress'
        assert result.value.status_changed is False
        assert batch.status == 'in_progress'

    def test_cancelled_batch_stays_cancelled(self, session, vial_type, make_batch):
        batch = make_batch(vial_type, status='cancelled')
        _shipment(session, batch, 'delivered', boxes=[(None, 10)])

        result = shipment_service.update_batch_status(session, batch.id)

        assert result.value.status == 'cancelled'
        assert batch.status == 'cancelled'
        assert batch.completed_at is None

    def test_mixed_delivered_and_pending(self, session, batch):
        _shipment(session, batch, 'delivered', boxes=[(None, 20)])
        _shipment(session, batch, 'pending', boxes=[(None, 30)])

        result = shipment_service.update_batch_status(session, batch.id)

        assert result.value.status == 'in_progress'
        assert batch.status == 'in_progress'
        assert batch.completed_at is None
        assert batch.shipped_units == 50
        assert batch.units_in_progress == 30

    def test_all_delivered_sets_completed_at_once(self, session, batch):
        _shipment(session, batch, 'delivered', boxes=[(None, 100)])

        first = shipment_service.update_batch_status(session, batch.id)
        completed_at = batch.completed_at
        second = shipment_service.update_batch_status(session, batch.id)

        assert first.value.status == 'completed'
        assert completed_at is not None
        assert batch.completed_at == completed_at
        assert second.value.status_changed is False

    def test_idempotent(self, session, batch):
        _shipment(session, batch, 'shipped', boxes=[(None, 10), (None, 15)])
        _shipment(session, batch, 'preparing', boxes=[(None, 5)])

        first = shipment_service.update_batch_status(session, batch.id).value
        second = shipment_service.update_batch_status(session, batch.id).value

        assert (first.status, first.shipped_units) == (second.status, second.shipped_units)
        assert second.shipped_units == 30

    def test_pack_batch_sums_packs(self, session, pack_batch):
        _shipment(session, pack_batch, 'shipped', boxes=[(4, 24), (2, 12)])

        shipment_service.update_batch_status(session, pack_batch.id)

        assert pack_batch.shipped_units == 6

    def test_earliest_pending_backfills_started_at(self, session, batch):
        _shipment(session, batch, 'pending', created_at=datetime(2024, 2, 1, 9, 0))
        _shipment(session, batch, 'pending', created_at=datetime(2024, 1, 15, 9, 0))

        shipment_service.update_batch_status(session, batch.id)

        assert batch.started_at == datetime(2024, 1, 15, 9, 0)

    def test_started_at_not_overwritten(self, session, batch):
        batch.started_at = datetime(2023, 12, 1)
        session.commit()
        _shipment(session, batch, 'pending', created_at=datetime(2024, 1, 15))

        shipment_service.update_batch_status(session, batch.id)

        assert batch.started_at == datetime(2023, 12, 1)

    def test_missing_batch_returns_failure(self, session):
        result = shipment_service.update_batch_status(session, 999)

        assert result.ok is False
        assert result.error.status_code == 404

    def test_missing_batch_raises_when_asked(self, session):
        with pytest.raises(Exception) as exc_info:
            shipment_service.update_batch_status(session, 999, raise_errors=True)

        assert exc_info.value.status_code == 404


class TestShipmentsAndBoxes:
    """Tests for shipment and box operations."""

    def test_create_shipment(self, session, batch):
        shipment = shipment_service.create_shipment(session, batch.id)

        assert shipment.status == 'preparing'
        assert shipment.shipment_number.startswith('SHP-')
        assert batch.status == 'in_progress'

    def test_cancelled_batch_cannot_ship(self, session, vial_type, make_batch):
        batch = make_batch(vial_type, status='cancelled')

        with pytest.raises(BusinessLogicError):
            shipment_service.create_shipment(session, batch.id)

    def test_add_box_deducts_per_box_materials(self, session, batch, carton):
        shipment = shipment_service.create_shipment(session, batch.id)

        box = shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 40})

        assert box.id is not None
        assert inventory_service.get_stock(session, carton.id) == Decimal('19')
        assert batch.shipped_units == 40
        assert batch.units_in_progress == 40

    def test_box_for_pack_batch_fills_bottles(self, session, pack_batch):
        shipment = shipment_service.create_shipment(session, pack_batch.id)

        box = shipment_service.add_box(session, shipment.id, {'box_number': 1, 'packs_per_box': 3})

        assert box.bottles_per_box == 18
        assert pack_batch.shipped_units == 3

    def test_box_cannot_exceed_batch(self, session, batch):
        shipment = shipment_service.create_shipment(session, batch.id)
        shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 80})

        with pytest.raises(BusinessLogicError) as exc_info:
            shipment_service.add_box(session, shipment.id, {'box_number': 2, 'bottles_per_box': 21})

        assert '20 remaining' in exc_info.value.message

    def test_duplicate_box_number(self, session, batch):
        shipment = shipment_service.create_shipment(session, batch.id)
        shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 10})

        with pytest.raises(BusinessLogicError):
            shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 10})

    def test_box_without_cartons_left(self, session, batch, vial_type, make_material, add_bom_row):
        empty = make_material(name='Empty carton', stock='0')
        add_bom_row(vial_type, empty, application_type=ApplicationType.PER_BOX)
        shipment = shipment_service.create_shipment(session, batch.id)

        with pytest.raises(InsufficientStockError):
            shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 10})

        assert session.query(ShipmentBox).count() == 0

    def test_box_validation(self, session, batch):
        shipment = shipment_service.create_shipment(session, batch.id)

        with pytest.raises(ValidationError):
            shipment_service.add_box(session, shipment.id, {'box_number': 1})

    def test_delete_box_restores_and_resets(self, session, batch, carton):
        shipment = shipment_service.create_shipment(session, batch.id)
        box = shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 40})
        shipment_service.update_shipment_status(session, shipment.id, 'shipped')

        shipment_service.delete_box(session, box.id)

        assert inventory_service.get_stock(session, carton.id) == Decimal('20')
        assert shipment.status == 'preparing'
        assert shipment.shipped_at is None
        assert batch.shipped_units == 0

    def test_status_update_drives_batch(self, session, batch):
        shipment = shipment_service.create_shipment(session, batch.id)
        shipment_service.add_box(session, shipment.id, {'box_number': 1, 'bottles_per_box': 100})

        shipment_service.update_shipment_status(session, shipment.id, 'delivered')

        assert shipment.delivered_at is not None
        assert shipment.shipped_at is not None
        assert batch.status == 'completed'
        assert batch.units_in_progress == 0

    def test_invalid_shipment_status(self, session, batch):
        shipment = shipment_service.create_shipment(session, batch.id)

        with pytest.raises(ValidationError):
            shipment_service.update_shipment_status(session, shipment.id, 'lost')
