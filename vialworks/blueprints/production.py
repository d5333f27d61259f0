"""Production blueprint - batches and their lifecycle."""
from flask import Blueprint, jsonify, request
from vialworks.database import get_session
from vialworks.decorators.permissions import admin_required
from vialworks.exceptions import InsufficientStockError
from vialworks.services import production_service, shipment_service
from vialworks.utils.requests import get_payload
from vialworks.blueprints.metrics import production_starts_total, stock_deductions_refused_total

production_bp = Blueprint('production', __name__, url_prefix='/api/batches')


@production_bp.route('', methods=['GET'])
@admin_required
def list_batches():
    session = get_session()
    batches = production_service.list_batches(
        session,
        status=request.args.get('status'),
        vial_type_id=request.args.get('vial_type_id', type=int),
    )
    return jsonify({'batches': [production_service.serialize_batch(b) for b in batches]})


@production_bp.route('', methods=['POST'])
@admin_required
def create_batch():
    session = get_session()
    batch = production_service.create_batch(session, get_payload())
    return jsonify(production_service.serialize_batch(batch)), 201


@production_bp.route('/<int:batch_id>', methods=['GET'])
@admin_required
def get_batch(batch_id):
    session = get_session()
    batch = production_service.get_batch(session, batch_id)
    return jsonify(production_service.serialize_batch(batch, include_shipments=True))


@production_bp.route('/<int:batch_id>', methods=['PATCH'])
@admin_required
def update_batch(batch_id):
    session = get_session()
    batch = production_service.update_batch(session, batch_id, get_payload())
    return jsonify(production_service.serialize_batch(batch))


@production_bp.route('/<int:batch_id>/start', methods=['POST'])
@admin_required
def start_production(batch_id):
    session = get_session()
    try:
        batch = production_service.start_production(session, batch_id)
    except InsufficientStockError:
        stock_deductions_refused_total.labels(operation='production_start').inc()
        raise
    production_starts_total.inc()
    return jsonify(production_service.serialize_batch(batch))


@production_bp.route('/<int:batch_id>/restore', methods=['POST'])
@admin_required
def restore_materials(batch_id):
    session = get_session()
    batch = production_service.restore_materials(session, batch_id)
    return jsonify(production_service.serialize_batch(batch))


@production_bp.route('/<int:batch_id>/cancel', methods=['POST'])
@admin_required
def cancel_batch(batch_id):
    session = get_session()
    batch = production_service.cancel_batch(session, batch_id)
    return jsonify(production_service.serialize_batch(batch))


@production_bp.route('/<int:batch_id>/requirements', methods=['GET'])
@admin_required
def batch_requirements(batch_id):
    session = get_session()
    box_count = request.args.get('boxes', type=int)
    return jsonify(production_service.batch_requirements(session, batch_id, box_count=box_count))


@production_bp.route('/<int:batch_id>/recompute', methods=['POST'])
@admin_required
def recompute(batch_id):
    """Re-derive status and shipped units from the batch's shipments."""
    session = get_session()
    production_service.get_batch(session, batch_id)
    result = shipment_service.update_batch_status(session, batch_id)
    if not result.ok:
        return jsonify({'status': 'error', 'message': result.error_message}), \
            getattr(result.error, 'status_code', 500)
    return jsonify(result.value.to_dict())
