from flask import Blueprint, request, jsonify
from functools import wraps
from flask_jwt_extended import jwt_required, current_user
from sqlalchemy import or_, update
from datetime import datetime
import logging
from db.db import db
from models.users import User, Role
from models.vehicle import Vehicle
from models.parking_slot import ParkingSlot, SlotStatus
from models.slot_request import SlotRequest, RequestStatus
from models.action_log import ActionLog
from services.action_log import record_action
from utils.errors import Forbidden, NotFound, ValidationError
from utils.pagination import page_args, paginated

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/v1/users')

def role_required(*allowed_roles):
    """Allow the wrapped view only for users whose role is one of ``allowed_roles``.

    Must sit below ``@jwt_required()`` so that ``current_user`` is loaded.
    """
    for role in allowed_roles:
        if not isinstance(role, Role):
            raise TypeError(f'role_required expects Role members, got {role!r}')

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_user is None:
                raise NotFound('User not found')
            if current_user.role not in allowed_roles:
                raise Forbidden('Insufficient permissions')
            return f(*args, **kwargs)
        return decorated_function
    return decorator

admin_required = role_required(Role.ADMIN)

@admin_bp.route('', methods=['GET'])
@jwt_required()
@admin_required
def list_users():
    page, per_page = page_args()
    search = request.args.get('search', '')

    query = User.query
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    users = query.order_by(User.created_at.desc()).paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(paginated(users)), 200

@admin_bp.route('/<uuid:user_id>', methods=['GET'])
@jwt_required()
@admin_required
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User not found')

    data = user.to_dict()
    data['vehicles'] = [
        {'id': str(v.id), 'plate_number': v.plate_number, 'vehicle_type': v.vehicle_type}
        for v in user.vehicles
    ]
    data['slot_requests'] = [
        {'id': str(r.id), 'request_status': r.request_status.value, 'created_at': r.created_at.isoformat()}
        for r in user.slot_requests
    ]
    return jsonify(data), 200

@admin_bp.route('/<uuid:user_id>', methods=['DELETE'])
@jwt_required()
@admin_required
def delete_user(user_id):
    """Hard-delete a user together with everything that references them.

    Slots held by the user's approved requests go back to AVAILABLE first.
    The user's own audit rows are deleted too, so their history is lost.
    """
    if user_id == current_user.id:
        raise ValidationError('Admin cannot delete their own account through this endpoint.')

    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User not found')
    email = user.email

    try:
        held_slot_ids = db.session.scalars(
            db.select(SlotRequest.slot_id).where(
                SlotRequest.user_id == user_id,
                SlotRequest.request_status == RequestStatus.APPROVED,
                SlotRequest.slot_id.isnot(None)
            )
        ).all()
        if held_slot_ids:
            db.session.execute(
                update(ParkingSlot)
                .where(ParkingSlot.id.in_(held_slot_ids))
                .values(status=SlotStatus.AVAILABLE)
                .execution_options(synchronize_session=False)
            )

        ActionLog.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        SlotRequest.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        Vehicle.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"User {email} deleted; released {len(held_slot_ids)} slot(s)")
    record_action('USER_DELETED_BY_ADMIN', current_user.id, {
        'deleted_user_id': str(user_id),
        'deleted_user_email': email,
        'released_slot_ids': [str(s) for s in held_slot_ids]
    })
    return jsonify({'message': 'User deleted successfully'}), 200

@admin_bp.route('/logs', methods=['GET'])
@jwt_required()
@admin_required
def get_action_logs():
    page, per_page = page_args(default_per_page=50)
    action = request.args.get('action')
    start_date = request.args.get('start_date')
    end_date = request.args.get('end_date')

    query = ActionLog.query

    if action:
        query = query.filter_by(action=action)
    try:
        if start_date:
            query = query.filter(ActionLog.timestamp >= datetime.fromisoformat(start_date))
        if end_date:
            query = query.filter(ActionLog.timestamp <= datetime.fromisoformat(end_date))
    except ValueError:
        raise ValidationError('start_date and end_date must be ISO 8601 dates')

    logs = query.order_by(ActionLog.timestamp.desc()).paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(paginated(logs)), 200
