from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, current_user
from models.users import Role
from controllers.admin import admin_required, role_required
from services import slot_requests as lifecycle
from utils.pagination import page_args, paginated

slot_request_bp = Blueprint('slot_requests', __name__, url_prefix='/api/v1/slot-requests')

user_required = role_required(Role.USER)

@slot_request_bp.route('', methods=['POST'])
@jwt_required()
@user_required
def create_slot_request():
    data = request.get_json(silent=True) or {}
    slot_request = lifecycle.create_slot_request(data.get('vehicle_id'), current_user)
    return jsonify({
        'message': 'Slot request created successfully. Awaiting admin approval.',
        'data': slot_request.to_dict()
    }), 201

@slot_request_bp.route('', methods=['GET'])
@jwt_required()
def list_slot_requests():
    """Users see their own requests, admins see all of them."""
    page, per_page = page_args()
    requests_page = lifecycle.list_slot_requests(
        current_user,
        status=request.args.get('status'),
        search=request.args.get('search'),
        page=page,
        per_page=per_page
    )
    return jsonify(paginated(requests_page, lambda r: r.to_dict(include_relations=True))), 200

@slot_request_bp.route('/<request_id>', methods=['GET'])
@jwt_required()
def get_slot_request(request_id):
    slot_request = lifecycle.get_slot_request(request_id, current_user)
    return jsonify(slot_request.to_dict(include_relations=True)), 200

@slot_request_bp.route('/<request_id>', methods=['PUT'])
@jwt_required()
@user_required
def update_slot_request(request_id):
    data = request.get_json(silent=True) or {}
    slot_request = lifecycle.update_slot_request(request_id, data.get('vehicle_id'), current_user)
    return jsonify({'message': 'Slot request updated successfully.', 'data': slot_request.to_dict()}), 200

@slot_request_bp.route('/<request_id>/cancel', methods=['PATCH'])
@jwt_required()
@user_required
def cancel_slot_request(request_id):
    slot_request = lifecycle.cancel_slot_request(request_id, current_user)
    return jsonify({'message': 'Slot request cancelled successfully.', 'data': slot_request.to_dict()}), 200

@slot_request_bp.route('/<request_id>/approve', methods=['PATCH'])
@jwt_required()
@admin_required
def approve_slot_request(request_id):
    data = request.get_json(silent=True) or {}
    slot_request = lifecycle.approve_slot_request(request_id, current_user, slot_id=data.get('slot_id'))
    return jsonify({'message': 'Slot request approved and slot assigned.', 'data': slot_request.to_dict()}), 200

@slot_request_bp.route('/<request_id>/reject', methods=['PATCH'])
@jwt_required()
@admin_required
def reject_slot_request(request_id):
    data = request.get_json(silent=True) or {}
    slot_request = lifecycle.reject_slot_request(request_id, current_user, reason=data.get('rejection_reason'))
    return jsonify({'message': 'Slot request rejected.', 'data': slot_request.to_dict()}), 200
