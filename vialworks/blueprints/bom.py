"""Bill of materials blueprint."""
from flask import Blueprint, jsonify, request
from vialworks.database import get_session
from vialworks.decorators.permissions import admin_required
from vialworks.services import bom_service
from vialworks.utils.requests import get_payload

bom_bp = Blueprint('bom', __name__, url_prefix='/api/bom')


@bom_bp.route('/vial-types/<int:vial_type_id>', methods=['GET'])
@admin_required
def vial_type_materials(vial_type_id):
    session = get_session()
    rows = bom_service.list_vial_type_materials(session, vial_type_id)
    return jsonify({'vial_type_id': vial_type_id,
                    'materials': [bom_service.serialize_vial_type_material(r) for r in rows]})


@bom_bp.route('/vial-types/<int:vial_type_id>', methods=['POST'])
@admin_required
def set_vial_type_material(vial_type_id):
    session = get_session()
    row = bom_service.set_vial_type_material(session, vial_type_id, get_payload())
    return jsonify(bom_service.serialize_vial_type_material(row)), 201


@bom_bp.route('/vial-types/<int:vial_type_id>/<int:material_id>', methods=['DELETE'])
@admin_required
def remove_vial_type_material(vial_type_id, material_id):
    session = get_session()
    removed = bom_service.remove_vial_type_material(
        session, vial_type_id, material_id, request.args.get('application_type')
    )
    return jsonify({'removed': removed})


@bom_bp.route('/products/<int:product_id>', methods=['GET'])
@admin_required
def product_materials(product_id):
    session = get_session()
    rows = bom_service.list_product_materials(session, product_id)
    return jsonify({'product_id': product_id,
                    'materials': [bom_service.serialize_product_material(r) for r in rows]})


@bom_bp.route('/products/<int:product_id>', methods=['POST'])
@admin_required
def set_product_material(product_id):
    session = get_session()
    row = bom_service.set_product_material(session, product_id, get_payload())
    return jsonify(bom_service.serialize_product_material(row)), 201


@bom_bp.route('/products/<int:product_id>/<int:material_id>', methods=['DELETE'])
@admin_required
def remove_product_material(product_id, material_id):
    session = get_session()
    bom_service.remove_product_material(session, product_id, material_id)
    return jsonify({'removed': 1})
