from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, current_user
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
import logging
from db.db import db
from models.vehicle import Vehicle
from models.slot_request import SlotRequest
from services.action_log import record_action
from utils.errors import Conflict, Forbidden, NotFound, ValidationError, require_fields
from utils.pagination import page_args, paginated

logger = logging.getLogger(__name__)

vehicle_bp = Blueprint('vehicles', __name__, url_prefix='/api/v1/vehicles')

def _get_vehicle(vehicle_id):
    vehicle = db.session.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFound('Vehicle not found')
    return vehicle

def _ensure_owner(vehicle, verb):
    if vehicle.user_id != current_user.id:
        raise Forbidden(f'Not authorized to {verb} this vehicle')

@vehicle_bp.route('', methods=['POST'])
@jwt_required()
def add_vehicle():
    data = request.get_json(silent=True)
    require_fields(data, ['plate_number', 'vehicle_type', 'size'])

    other_attributes = data.get('other_attributes') or {}
    if not isinstance(other_attributes, dict):
        raise ValidationError('other_attributes must be an object')

    if Vehicle.query.filter_by(plate_number=data['plate_number']).first():
        raise Conflict('Vehicle with this plate number already exists.')

    vehicle = Vehicle(
        plate_number=data['plate_number'],
        vehicle_type=data['vehicle_type'],
        size=data['size'],
        other_attributes=other_attributes,
        user_id=current_user.id
    )

    try:
        db.session.add(vehicle)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('Vehicle with this plate number already exists.')

    record_action('VEHICLE_ADDED', current_user.id, {
        'vehicle_id': str(vehicle.id),
        'plate_number': vehicle.plate_number
    })
    return jsonify(vehicle.to_dict()), 201

@vehicle_bp.route('', methods=['GET'])
@jwt_required()
def list_vehicles():
    page, per_page = page_args()
    search = request.args.get('search', '')

    query = Vehicle.query.filter_by(user_id=current_user.id)
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Vehicle.plate_number.ilike(pattern), Vehicle.vehicle_type.ilike(pattern)))

    vehicles = query.order_by(Vehicle.created_at.desc()).paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(paginated(vehicles)), 200

@vehicle_bp.route('/<uuid:vehicle_id>', methods=['GET'])
@jwt_required()
def get_vehicle(vehicle_id):
    vehicle = _get_vehicle(vehicle_id)
    if not current_user.is_admin:
        _ensure_owner(vehicle, 'view')

    record_action('VEHICLE_VIEWED', current_user.id, {'vehicle_id': str(vehicle.id)})
    return jsonify(vehicle.to_dict()), 200

@vehicle_bp.route('/<uuid:vehicle_id>', methods=['PUT'])
@jwt_required()
def update_vehicle(vehicle_id):
    """Update type, size or attributes. The plate number is fixed."""
    data = request.get_json(silent=True) or {}
    vehicle = _get_vehicle(vehicle_id)
    _ensure_owner(vehicle, 'update')

    for field in ('vehicle_type', 'size'):
        if field in data:
            if not data[field] or not isinstance(data[field], str):
                raise ValidationError(f'Invalid {field}')
            setattr(vehicle, field, data[field])

    if 'other_attributes' in data:
        if data['other_attributes'] is not None and not isinstance(data['other_attributes'], dict):
            raise ValidationError('other_attributes must be an object')
        vehicle.other_attributes = data['other_attributes'] or {}

    db.session.commit()

    record_action('VEHICLE_UPDATED', current_user.id, {'vehicle_id': str(vehicle.id)})
    return jsonify(vehicle.to_dict()), 200

@vehicle_bp.route('/<uuid:vehicle_id>', methods=['DELETE'])
@jwt_required()
def delete_vehicle(vehicle_id):
    vehicle = _get_vehicle(vehicle_id)
    _ensure_owner(vehicle, 'delete')

    if any(r.is_active for r in vehicle.slot_requests):
        raise Conflict('Cannot delete vehicle with active or approved parking requests. Please cancel/resolve them first.')

    plate_number = vehicle.plate_number
    try:
        # Resolved requests go with the vehicle
        SlotRequest.query.filter_by(vehicle_id=vehicle.id).delete(synchronize_session=False)
        db.session.delete(vehicle)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    record_action('VEHICLE_DELETED', current_user.id, {
        'vehicle_id': str(vehicle_id),
        'plate_number': plate_number
    })
    return jsonify({'message': 'Vehicle deleted successfully'}), 200
