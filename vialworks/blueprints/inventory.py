"""Inventory blueprint - raw materials, stock movements and categories."""
from flask import Blueprint, jsonify, request
from vialworks.database import get_session
from vialworks.decorators.permissions import admin_required
from vialworks.exceptions import InsufficientStockError, ValidationError
from vialworks.services import inventory_service
from vialworks.utils.requests import get_payload
from vialworks.blueprints.metrics import stock_deductions_refused_total

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api')


@inventory_bp.route('/materials', methods=['GET'])
@admin_required
def list_materials():
    session = get_session()
    materials = inventory_service.list_materials(
        session,
        category=request.args.get('category'),
        search=request.args.get('q'),
    )
    return jsonify({'materials': [m.to_dict() for m in materials]})


@inventory_bp.route('/materials', methods=['POST'])
@admin_required
def create_material():
    session = get_session()
    material = inventory_service.create_material(session, get_payload())
    return jsonify(material.to_dict()), 201


@inventory_bp.route('/materials/low-stock', methods=['GET'])
@admin_required
def low_stock():
    session = get_session()
    materials = inventory_service.get_low_stock_materials(session)
    return jsonify({'materials': [m.to_dict() for m in materials], 'count': len(materials)})


@inventory_bp.route('/materials/<int:material_id>', methods=['GET'])
@admin_required
def get_material(material_id):
    session = get_session()
    return jsonify(inventory_service.get_material(session, material_id).to_dict())


@inventory_bp.route('/materials/<int:material_id>', methods=['PATCH'])
@admin_required
def update_material(material_id):
    session = get_session()
    material = inventory_service.update_material(session, material_id, get_payload())
    return jsonify(material.to_dict())


@inventory_bp.route('/materials/<int:material_id>/stock', methods=['POST'])
@admin_required
def adjust_stock(material_id):
    """Add or deduct stock: {"quantity": 5, "direction": "add"|"deduct", "notes": "..."}."""
    session = get_session()
    data = get_payload()
    if 'quantity' not in data:
        raise ValidationError('Invalid stock adjustment', ['quantity is required'])

    try:
        new_stock = inventory_service.adjust_stock(
            session, material_id, data.get('quantity'),
            data.get('direction', inventory_service.DIRECTION_ADD),
            notes=data.get('notes'),
        )
    except InsufficientStockError:
        stock_deductions_refused_total.labels(operation='manual').inc()
        raise

    return jsonify({'material_id': material_id, 'current_stock': str(new_stock)})


@inventory_bp.route('/materials/<int:material_id>/movements', methods=['GET'])
@admin_required
def movements(material_id):
    session = get_session()
    limit = request.args.get('limit', 100, type=int)
    rows = inventory_service.list_movements(session, material_id, limit=min(max(limit, 1), 500))
    return jsonify({'movements': [m.to_dict() for m in rows]})


@inventory_bp.route('/material-categories', methods=['GET'])
@admin_required
def list_categories():
    session = get_session()
    include_inactive = request.args.get('all') in ('1', 'true')
    categories = inventory_service.list_categories(session, include_inactive=include_inactive)
    return jsonify({'categories': [{'id': c.id, 'name': c.name, 'active': c.active} for c in categories]})


@inventory_bp.route('/material-categories', methods=['POST'])
@admin_required
def create_category():
    session = get_session()
    category = inventory_service.create_category(session, get_payload().get('name'))
    return jsonify({'id': category.id, 'name': category.name, 'active': category.active}), 201


@inventory_bp.route('/material-categories/<int:category_id>', methods=['PATCH'])
@admin_required
def toggle_category(category_id):
    session = get_session()
    data = get_payload()
    active = data.get('active')
    if isinstance(active, str):
        active = active.lower() in ('1', 'true', 'yes', 'on')
    category = inventory_service.set_category_active(session, category_id, bool(active))
    return jsonify({'id': category.id, 'name': category.name, 'active': category.active})
