"""
Unit tests for FedEx tracking notifications.
"""

import pytest
from decimal import Decimal
from unittest.mock import patch
from vialworks.models import Order, Shipment, ShipmentBox
from vialworks.services import carrier_service


@pytest.mark.parametrize('code,expected', [
    ('PU', 'shipped'), ('PX', 'shipped'), ('SF', 'shipped'), ('DP', 'shipped'),
    ('DL', 'delivered'),
    ('SE', 'exception'), ('DE', 'exception'), ('CA', 'exception'),
    ('IT', None), ('OD', None), (None, None), ('dl', 'delivered'),
])
def test_map_fedex_status(code, expected):
    assert carrier_service.map_fedex_status(code) == expected


class TestAuthorization:
    """Tests for webhook secret checks."""

    def test_bearer_header(self):
        assert carrier_service.is_authorized('s3cret', 'Bearer s3cret', None) is True

    def test_secret_header(self):
        assert carrier_service.is_authorized('s3cret', None, 's3cret') is True

    def test_wrong_secret(self):
        assert carrier_service.is_authorized('s3cret', 'Bearer nope', 'nope') is False
        assert carrier_service.is_authorized('s3cret', None, None) is False

    def test_non_ascii_header_rejected(self):
        assert carrier_service.is_authorized('s3cret', 'Bearer café', 'café') is False

    def test_no_secret_configured(self):
        assert carrier_service.is_authorized(None, None, None) is True


class TestExtractEvents:
    """Tests for payload shapes."""

    def test_track_notification_list(self):
        payload = {'TrackNotification': [{'trackingNumber': '1'}, {'trackingNumber': '2'}]}
        assert len(carrier_service.extract_events(payload)) == 2

    def test_notifications_list(self):
        assert len(carrier_service.extract_events({'notifications': [{'trackingNumber': '1'}]})) == 1

    def test_single_event(self):
        payload = {'trackingNumber': '1', 'statusDetail': {'code': 'DL'}}
        assert carrier_service.extract_events(payload) == [payload]


def _order(session, status='processing', tracking='794600000001'):
    order = Order(customer_email='buyer@example.com', status=status, total_amount=Decimal('35.00'),
                  shipping_cost=Decimal('10.00'), tracking_number=tracking)
    session.add(order)
    session.commit()
    return order


class TestProcessTrackingEvents:
    """Tests for process_tracking_events."""

    def test_delivered_updates_order_and_emails(self, session):
        order = _order(session)

        with patch('vialworks.services.email_service.send_order_status_email', return_value=True) as send:
            summary = carrier_service.process_tracking_events(session, {
                'trackingNumber': '794600000001', 'statusDetail': {'code': 'DL', 'description': 'Delivered'},
            })

        assert order.status == 'delivered'
        assert summary['orders_updated'] == 1
        send.assert_called_once()

    def test_redundant_update_skipped(self, session):
        _order(session, status='shipped')

        with patch('vialworks.services.email_service.send_order_status_email') as send:
            summary = carrier_service.process_tracking_events(session, {
                'TrackNotification': [{'trackingNumber': '794600000001', 'statusDetail': {'code': 'PU'}}],
            })

        assert summary['skipped'] == 1
        assert summary['orders_updated'] == 0
        send.assert_not_called()

    def test_exception_updates_order_without_email(self, session):
        order = _order(session)

        with patch('vialworks.services.email_service.send_order_status_email') as send:
            carrier_service.process_tracking_events(session, {
                'trackingNumber': '794600000001', 'statusDetail': {'code': 'DE'},
            })

        assert order.status == 'exception'
        send.assert_not_called()

    def test_informational_scan_ignored(self, session):
        order = _order(session)

        summary = carrier_service.process_tracking_events(session, {
            'trackingNumber': '794600000001', 'statusDetail': {'code': 'IT'},
        })

        assert summary['ignored'] == 1
        assert order.status == 'processing'

    def test_event_without_tracking_number(self, session):
        summary = carrier_service.process_tracking_events(session, {'statusDetail': {'code': 'DL'}})

        assert summary['ignored'] == 1

    def test_delivered_box_completes_batch(self, session, batch):
        shipment = Shipment(shipment_number='SHP-T-1', batch_id=batch.id, status='shipped')
        session.add(shipment)
        session.flush()
        session.add(ShipmentBox(shipment_id=shipment.id, box_number=1, bottles_per_box=100,
                                tracking_number='794600000009'))
        session.commit()

        summary = carrier_service.process_tracking_events(session, {
            'trackingNumber': '794600000009', 'statusDetail': {'code': 'DL'},
        })

        assert summary['shipments_updated'] == 1
        assert shipment.status == 'delivered'
        assert shipment.delivered_at is not None
        assert batch.status == 'completed'
        assert batch.shipped_units == 100

    def test_late_pickup_does_not_regress_delivered(self, session, batch):
        shipment = Shipment(shipment_number='SHP-T-2', batch_id=batch.id, status='delivered')
        session.add(shipment)
        session.flush()
        session.add(ShipmentBox(shipment_id=shipment.id, box_number=1, bottles_per_box=10,
                                tracking_number='794600000010'))
        session.commit()

        carrier_service.process_tracking_events(session, {
            'trackingNumber': '794600000010', 'statusDetail': {'code': 'PU'},
        })

        assert shipment.status == 'delivered'
