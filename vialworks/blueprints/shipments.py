"""Shipments blueprint - shipments and boxes."""
from flask import Blueprint, jsonify
from vialworks.database import get_session
from vialworks.decorators.permissions import admin_required
from vialworks.exceptions import InsufficientStockError, ValidationError
from vialworks.services import shipment_service
from vialworks.utils.parsing import parse_int
from vialworks.utils.requests import get_payload
from vialworks.blueprints.metrics import stock_deductions_refused_total

shipments_bp = Blueprint('shipments', __name__, url_prefix='/api')


@shipments_bp.route('/shipments', methods=['POST'])
@admin_required
def create_shipment():
    session = get_session()
    data = get_payload()
    errors = []
    batch_id = parse_int(data.get('batch_id'), 'batch_id', errors)
    if errors:
        raise ValidationError('Invalid shipment data', errors)
    shipment = shipment_service.create_shipment(session, batch_id, data)
    return jsonify(shipment.to_dict(include_boxes=True)), 201


@shipments_bp.route('/shipments/<int:shipment_id>', methods=['GET'])
@admin_required
def get_shipment(shipment_id):
    session = get_session()
    return jsonify(shipment_service.get_shipment(session, shipment_id).to_dict(include_boxes=True))


@shipments_bp.route('/shipments/<int:shipment_id>/status', methods=['POST'])
@admin_required
def update_status(shipment_id):
    session = get_session()
    shipment = shipment_service.update_shipment_status(session, shipment_id, get_payload().get('status'))
    return jsonify(shipment.to_dict())


@shipments_bp.route('/shipments/<int:shipment_id>/boxes', methods=['POST'])
@admin_required
def add_box(shipment_id):
    session = get_session()
    try:
        box = shipment_service.add_box(session, shipment_id, get_payload())
    except InsufficientStockError:
        stock_deductions_refused_total.labels(operation='box').inc()
        raise
    return jsonify(box.to_dict()), 201


@shipments_bp.route('/boxes/<int:box_id>', methods=['DELETE'])
@admin_required
def delete_box(box_id):
    session = get_session()
    shipment_service.delete_box(session, box_id)
    return jsonify({'deleted': box_id})
