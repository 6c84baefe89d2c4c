# parking_slot.py
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, current_user
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
import logging
from db.db import db
from models.parking_slot import ParkingSlot, SlotStatus
from models.slot_request import SlotRequest, RequestStatus
from controllers.admin import admin_required
from services.action_log import record_action
from utils.errors import Conflict, NotFound, ValidationError, require_fields
from utils.pagination import page_args, paginated

logger = logging.getLogger(__name__)

parking_bp = Blueprint('parking_slots', __name__, url_prefix='/api/v1/parking-slots')

SLOT_FIELDS = ['slot_number', 'size', 'vehicle_type', 'location']

# Statuses an administrator may set by hand; UNAVAILABLE belongs to approvals
EDITABLE_STATUSES = (SlotStatus.AVAILABLE, SlotStatus.MAINTENANCE)

def _get_slot(slot_id):
    slot = db.session.get(ParkingSlot, slot_id)
    if not slot:
        raise NotFound('Parking slot not found')
    return slot

def _approved_request_for(slot):
    return SlotRequest.query.filter_by(slot_id=slot.id, request_status=RequestStatus.APPROVED).first()

def _new_slot(data):
    return ParkingSlot(
        slot_number=data['slot_number'],
        size=data['size'],
        vehicle_type=data['vehicle_type'],
        location=data['location'],
        status=SlotStatus.AVAILABLE
    )

@parking_bp.route('', methods=['POST'])
@jwt_required()
@admin_required
def create_slot():
    data = request.get_json(silent=True)
    require_fields(data, SLOT_FIELDS)

    if ParkingSlot.query.filter_by(slot_number=data['slot_number']).first():
        raise Conflict(f"Slot number {data['slot_number']} already exists.")

    slot = _new_slot(data)
    try:
        db.session.add(slot)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(f"Slot number {data['slot_number']} already exists.")

    record_action('SLOT_CREATED', current_user.id, {'slot_id': str(slot.id), 'slot_number': slot.slot_number})
    return jsonify(slot.to_dict()), 201

@parking_bp.route('/bulk', methods=['POST'])
@jwt_required()
@admin_required
def bulk_create_slots():
    """Create many slots; bad entries are reported without stopping the rest."""
    data = request.get_json(silent=True) or {}
    slots = data.get('slots')

    if not isinstance(slots, list) or not slots:
        raise ValidationError('Slots array is required and cannot be empty.')

    created = []
    errors = []
    for slot_data in slots:
        try:
            if not isinstance(slot_data, dict):
                raise ValidationError('Each slot must be an object')
            require_fields(slot_data, SLOT_FIELDS)
            if ParkingSlot.query.filter_by(slot_number=slot_data['slot_number']).first():
                raise Conflict(f"Slot number {slot_data['slot_number']} already exists.")

            slot = _new_slot(slot_data)
            db.session.add(slot)
            db.session.commit()
            created.append(slot)
        except (ValidationError, Conflict) as e:
            errors.append({'slot': slot_data, 'error': e.message})
        except IntegrityError:
            db.session.rollback()
            errors.append({'slot': slot_data, 'error': f"Slot number {slot_data['slot_number']} already exists."})

    record_action('SLOTS_BULK_CREATED', current_user.id, {
        'created_count': len(created),
        'error_count': len(errors)
    })

    body = {'created': [s.to_dict() for s in created], 'errors': errors}
    if errors:
        body['message'] = f'{len(created)} slots created, {len(errors)} failed.'
        return jsonify(body), 207
    body['message'] = f'{len(created)} slots created successfully.'
    return jsonify(body), 201

@parking_bp.route('', methods=['GET'])
@jwt_required()
def list_slots():
    """Users only ever see AVAILABLE slots; admins may filter by status."""
    page, per_page = page_args()
    search = request.args.get('search', '')
    status = request.args.get('status')

    query = ParkingSlot.query
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            ParkingSlot.slot_number.ilike(pattern),
            ParkingSlot.vehicle_type.ilike(pattern),
            ParkingSlot.size.ilike(pattern),
            ParkingSlot.location.ilike(pattern)
        ))

    if not current_user.is_admin:
        query = query.filter(ParkingSlot.status == SlotStatus.AVAILABLE)
    elif status:
        try:
            query = query.filter(ParkingSlot.status == SlotStatus(status.upper()))
        except ValueError:
            raise ValidationError(f'Invalid status filter: {status}')

    slots = query.order_by(ParkingSlot.slot_number.asc()).paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(paginated(slots)), 200

@parking_bp.route('/<uuid:slot_id>', methods=['GET'])
@jwt_required()
def get_slot(slot_id):
    slot = _get_slot(slot_id)
    record_action('SLOT_VIEWED', current_user.id, {'slot_id': str(slot.id)})
    return jsonify(slot.to_dict()), 200

@parking_bp.route('/<uuid:slot_id>', methods=['PUT'])
@jwt_required()
@admin_required
def update_slot(slot_id):
    data = request.get_json(silent=True) or {}
    slot = _get_slot(slot_id)

    for field in SLOT_FIELDS:
        if field in data and (not data[field] or not isinstance(data[field], str)):
            raise ValidationError(f'Invalid {field}')

    new_status = None
    if 'status' in data:
        try:
            new_status = SlotStatus(str(data['status']).upper())
        except ValueError:
            raise ValidationError('Invalid status value. Must be AVAILABLE or MAINTENANCE.')
        if new_status not in EDITABLE_STATUSES:
            raise ValidationError('Slots become UNAVAILABLE only through an approved request.')

    bound = _approved_request_for(slot)
    if bound and (new_status is not None or any(f in data for f in ('size', 'vehicle_type'))):
        raise Conflict(
            'Cannot change status, size or vehicle type of a slot assigned to an approved request.',
            details={'request_id': str(bound.id)}
        )

    if data.get('slot_number') and data['slot_number'] != slot.slot_number:
        if ParkingSlot.query.filter_by(slot_number=data['slot_number']).first():
            raise Conflict(f"Slot number {data['slot_number']} already taken.")
        slot.slot_number = data['slot_number']
        if bound:
            bound.assigned_slot_number = slot.slot_number

    for field in ('size', 'vehicle_type', 'location'):
        if field in data:
            setattr(slot, field, data[field])
    if new_status is not None:
        slot.status = new_status

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(f"Slot number {data.get('slot_number')} already taken.")

    record_action('SLOT_UPDATED', current_user.id, {'slot_id': str(slot.id)})
    return jsonify(slot.to_dict()), 200

@parking_bp.route('/<uuid:slot_id>', methods=['DELETE'])
@jwt_required()
@admin_required
def delete_slot(slot_id):
    slot = _get_slot(slot_id)

    bound = _approved_request_for(slot)
    if bound:
        raise Conflict(
            'Cannot delete slot. It is currently assigned to an approved request. Resolve the request first.',
            details={'request_id': str(bound.id)}
        )

    slot_number = slot.slot_number
    db.session.delete(slot)
    db.session.commit()

    record_action('SLOT_DELETED', current_user.id, {'slot_id': str(slot_id), 'slot_number': slot_number})
    return jsonify({'message': 'Parking slot deleted successfully'}), 200
