import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest

from vialworks import create_app
from vialworks import database
from vialworks.models import (
    ApplicationType, Product, ProductionBatch, RawMaterial, VialType, VialTypeMaterial,
)

ADMIN_TOKEN = 'test-admin-token'


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    return create_app('config.TestingConfig')


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema and database session for each test."""
    ctx = app.app_context()
    ctx.push()
    database.create_all()
    session = database.get_session()
    yield session
    session.rollback()
    session.remove()
    database.drop_all()
    ctx.pop()


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}


def sign_stripe_payload(payload: str, secret: str, timestamp: int = None) -> str:
    """Stripe-Signature header for a payload, signed the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f'{timestamp}.{payload}'.encode('utf-8')
    signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f't={timestamp},v1={signature}'


@pytest.fixture
def stripe_event():
    """Build a signed Stripe event: returns (body, headers)."""
    def _build(event: dict, secret: str = 'whsec_test_secret'):
        body = json.dumps(event)
        return body, {'Stripe-Signature': sign_stripe_payload(body, secret),
                      'Content-Type': 'application/json'}
    return _build


def _make_material(session, name='Amber vial', stock='300', min_stock='0', **kwargs):
    material = RawMaterial(
        name=name,
        category=kwargs.pop('category', 'Vials'),
        unit=kwargs.pop('unit', 'ea'),
        current_stock=Decimal(stock),
        min_stock_level=Decimal(min_stock),
        **kwargs
    )
    session.add(material)
    session.commit()
    return material


def _add_bom_row(session, vial_type, material, quantity='1', application_type=ApplicationType.PER_UNIT):
    row = VialTypeMaterial(
        vial_type_id=vial_type.id,
        raw_material_id=material.id,
        quantity_per_unit=Decimal(quantity),
        application_type=application_type.value,
    )
    session.add(row)
    session.commit()
    return row


def _make_batch(session, vial_type, quantity=100, sale_type='individual', pack_quantity=None,
               status='pending', batch_number=None):
    batch = ProductionBatch(
        batch_number=batch_number or f'BATCH-TEST-{session.query(ProductionBatch).count() + 1:03d}',
        vial_type_id=vial_type.id,
        quantity=quantity,
        sale_type=sale_type,
        pack_quantity=pack_quantity,
        status=status,
        shipped_units=0,
        units_in_progress=0,
    )
    session.add(batch)
    session.commit()
    return batch


@pytest.fixture
def vial_type(session):
    """10ml vial type without BOM rows."""
    vial_type = VialType(name='10ml Amber', size_ml=Decimal('10'), active=True)
    session.add(vial_type)
    session.commit()
    return vial_type


@pytest.fixture
def material(session):
    """Material M with 300 units in stock."""
    return _make_material(session, name='M', stock='300')


@pytest.fixture
def per_unit_bom(session, vial_type, material):
    """Vial type consuming 2 units of M per bottle."""
    return _add_bom_row(session, vial_type, material, quantity='2')


@pytest.fixture
def batch(session, vial_type):
    """Pending individual batch of 100 bottles."""
    return _make_batch(session, vial_type, quantity=100)


@pytest.fixture
def pack_batch(session, vial_type):
    """Pending pack batch: 10 packs of 6 bottles."""
    return _make_batch(session, vial_type, quantity=60, sale_type='pack', pack_quantity=6)


@pytest.fixture
def carton(session, vial_type):
    """Shipping carton consumed once per box."""
    carton = _make_material(session, name='Carton', stock='20')
    _add_bom_row(session, vial_type, carton, quantity='1', application_type=ApplicationType.PER_BOX)
    return carton


@pytest.fixture
def product(session):
    product = Product(name='Serum 10ml', sale_type='individual', price=Decimal('25.00'),
                      is_active=True, is_published=True)
    session.add(product)
    session.commit()
    return product


@pytest.fixture
def make_material(session):
    """Factory: make_material(name, stock, min_stock, **fields)."""
    def _factory(*args, **kwargs):
        return _make_material(session, *args, **kwargs)
    return _factory


@pytest.fixture
def add_bom_row(session):
    """Factory: add_bom_row(vial_type, material, quantity, application_type)."""
    def _factory(*args, **kwargs):
        return _add_bom_row(session, *args, **kwargs)
    return _factory


@pytest.fixture
def make_batch(session):
    """Factory: make_batch(vial_type, quantity, sale_type, pack_quantity, status)."""
    def _factory(*args, **kwargs):
        return _make_batch(session, *args, **kwargs)
    return _factory
