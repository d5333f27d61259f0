"""Orders blueprint - back-office order management."""
from flask import Blueprint, jsonify, request
from vialworks.database import get_session
from vialworks.decorators.permissions import admin_required
from vialworks.services import order_service
from vialworks.utils.requests import get_payload

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('', methods=['GET'])
@admin_required
def list_orders():
    session = get_session()
    limit = request.args.get('limit', 100, type=int)
    orders = order_service.list_orders(session, status=request.args.get('status'),
                                       limit=min(max(limit, 1), 500))
    return jsonify({'orders': [o.to_dict() for o in orders]})


@orders_bp.route('/<int:order_id>', methods=['GET'])
@admin_required
def get_order(order_id):
    session = get_session()
    return jsonify(order_service.get_order(session, order_id).to_dict())


@orders_bp.route('/<int:order_id>', methods=['PATCH'])
@admin_required
def update_order(order_id):
    """Change status and/or tracking number: {"status": "shipped", "tracking_number": "..."}."""
    session = get_session()
    order = order_service.update_order(session, order_id, get_payload())
    return jsonify(order.to_dict())
