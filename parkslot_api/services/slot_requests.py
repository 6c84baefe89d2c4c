"""
Slot request lifecycle.

A request is created PENDING by the owner of a vehicle and leaves PENDING
exactly once: CANCELLED by the owner, REJECTED by an administrator, or
APPROVED by an administrator together with a parking slot. Every transition
is a compare-and-swap on ``request_status`` so that two racing callers can
never both move the same request.
"""
import logging
from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError
from db.db import db
from models.base import utcnow
from models.users import User
from models.vehicle import Vehicle
from models.parking_slot import ParkingSlot, SlotStatus
from models.slot_request import SlotRequest, RequestStatus, ACTIVE_STATUSES
from services.action_log import record_action
from services.slot_matcher import find_compatible_slot
from utils.email_sender import notify_request_approved, notify_request_rejected
from utils.errors import (
    Conflict, Forbidden, InvalidState, NoCompatibleSlot, NotFound, ValidationError, parse_uuid
)

logger = logging.getLogger(__name__)


def _get_request(request_id):
    slot_request = db.session.get(SlotRequest, parse_uuid(request_id, 'Request ID'))
    if not slot_request:
        raise NotFound('Slot request not found.')
    return slot_request


def _get_owned_vehicle(vehicle_id, user, forbidden_message):
    vehicle = db.session.get(Vehicle, parse_uuid(vehicle_id, 'Vehicle ID'))
    if not vehicle:
        raise NotFound('Vehicle not found.')
    if vehicle.user_id != user.id:
        raise Forbidden(forbidden_message)
    return vehicle


def _active_request_for(vehicle_id, excluding=None):
    query = SlotRequest.query.filter(
        SlotRequest.vehicle_id == vehicle_id,
        SlotRequest.request_status.in_(ACTIVE_STATUSES)
    )
    if excluding is not None:
        query = query.filter(SlotRequest.id != excluding)
    return query.first()


def _ensure_owner(slot_request, user, verb):
    if slot_request.user_id != user.id:
        raise Forbidden(f'Not authorized to {verb} this slot request.')


def _ensure_pending(slot_request, message):
    if slot_request.request_status != RequestStatus.PENDING:
        raise InvalidState(message.format(status=slot_request.request_status.value.lower()))


def _commit_or_conflict(message):
    try:
        db.session.commit()
    except IntegrityError:
        # The partial unique index on active requests per vehicle caught a race
        db.session.rollback()
        raise Conflict(message)


def _transition_from_pending(slot_request, new_status, **values):
    """Move a PENDING request to ``new_status`` inside the open transaction.

    Returns False when the row was no longer PENDING; the caller rolls back.
    """
    now = utcnow()
    result = db.session.execute(
        update(SlotRequest)
        .where(SlotRequest.id == slot_request.id, SlotRequest.request_status == RequestStatus.PENDING)
        .values(request_status=new_status, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _claim_slot(slot_id):
    result = db.session.execute(
        update(ParkingSlot)
        .where(ParkingSlot.id == slot_id, ParkingSlot.status == SlotStatus.AVAILABLE)
        .values(status=SlotStatus.UNAVAILABLE, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _lost_race(slot_request, message):
    db.session.rollback()
    db.session.refresh(slot_request)
    return InvalidState(message.format(status=slot_request.request_status.value.lower()))


def _notify(event, send, slot_request, *args):
    try:
        if not send(slot_request, *args):
            logger.warning(f"{event} notification for slot request {slot_request.id} was not delivered")
    except Exception as e:
        logger.error(f"{event} notification for slot request {slot_request.id} failed: {str(e)}")


def create_slot_request(vehicle_id, user):
    vehicle = _get_owned_vehicle(vehicle_id, user, 'You can only request slots for your own vehicles.')

    existing = _active_request_for(vehicle.id)
    if existing:
        raise Conflict(
            f'An active slot request (Status: {existing.request_status.value}) already exists for this vehicle.',
            details={'request_id': str(existing.id), 'request_status': existing.request_status.value}
        )

    slot_request = SlotRequest(user_id=user.id, vehicle_id=vehicle.id, request_status=RequestStatus.PENDING)
    db.session.add(slot_request)
    _commit_or_conflict('An active slot request already exists for this vehicle.')

    logger.info(f"Slot request {slot_request.id} created for vehicle {vehicle.plate_number}")
    record_action('SLOT_REQUEST_CREATED', user.id, {
        'request_id': str(slot_request.id),
        'vehicle_id': str(vehicle.id)
    })
    return slot_request


def update_slot_request(request_id, vehicle_id, user):
    """Swap the vehicle of the caller's PENDING request."""
    slot_request = _get_request(request_id)
    _ensure_owner(slot_request, user, 'update')
    _ensure_pending(slot_request, 'Cannot update request. Status is already {status}.')

    new_vehicle = _get_owned_vehicle(vehicle_id, user, 'Not authorized to use this vehicle for a slot request.')

    if new_vehicle.id != slot_request.vehicle_id:
        existing = _active_request_for(new_vehicle.id, excluding=slot_request.id)
        if existing:
            raise Conflict(
                f'An active slot request already exists for the new vehicle (Plate: {new_vehicle.plate_number}).',
                details={'request_id': str(existing.id), 'request_status': existing.request_status.value}
            )

        result = db.session.execute(
            update(SlotRequest)
            .where(SlotRequest.id == slot_request.id, SlotRequest.request_status == RequestStatus.PENDING)
            .values(vehicle_id=new_vehicle.id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _lost_race(slot_request, 'Cannot update request. Status is already {status}.')
        _commit_or_conflict(
            f'An active slot request already exists for the new vehicle (Plate: {new_vehicle.plate_number}).'
        )

    record_action('SLOT_REQUEST_UPDATED_BY_USER', user.id, {
        'request_id': str(slot_request.id),
        'new_vehicle_id': str(new_vehicle.id)
    })
    return slot_request


def cancel_slot_request(request_id, user):
    slot_request = _get_request(request_id)
    _ensure_owner(slot_request, user, 'cancel')
    _ensure_pending(slot_request, 'Cannot cancel request. Status is already {status}.')

    if not _transition_from_pending(slot_request, RequestStatus.CANCELLED):
        raise _lost_race(slot_request, 'Cannot cancel request. Status is already {status}.')
    db.session.commit()

    logger.info(f"Slot request {slot_request.id} cancelled by owner")
    record_action('SLOT_REQUEST_CANCELLED_BY_USER', user.id, {'request_id': str(slot_request.id)})
    return slot_request


def approve_slot_request(request_id, admin, slot_id=None):
    """Approve a PENDING request and bind a slot to it.

    ``slot_id`` is a manual choice which still has to pass the compatibility
    predicate; without it the oldest compatible slot is taken. The slot claim
    and the request transition commit together or not at all.
    """
    slot_request = _get_request(request_id)
    _ensure_pending(slot_request, 'Request already {status}')

    manual_slot_id = parse_uuid(slot_id, 'Slot ID') if slot_id is not None else None
    vehicle = slot_request.vehicle
    skipped = set()

    try:
        while True:
            slot = find_compatible_slot(vehicle, slot_id=manual_slot_id, exclude_ids=skipped)
            if slot is None:
                if manual_slot_id is not None:
                    raise NoCompatibleSlot('Manually assigned slot is not available or not compatible.')
                raise NoCompatibleSlot('No compatible parking slot available for this vehicle.')

            chosen_id, chosen_number = slot.id, slot.slot_number
            if _claim_slot(chosen_id):
                break

            # Another approval took this slot between our read and our write
            db.session.rollback()
            if manual_slot_id is not None:
                raise NoCompatibleSlot('Manually assigned slot is not available or not compatible.')
            skipped.add(chosen_id)

        approved = _transition_from_pending(
            slot_request,
            RequestStatus.APPROVED,
            slot_id=chosen_id,
            assigned_slot_number=chosen_number,
            approved_at=utcnow()
        )
        if not approved:
            raise _lost_race(slot_request, 'Request already {status}')
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Slot request {slot_request.id} approved with slot {chosen_number}")
    record_action('SLOT_REQUEST_APPROVED', admin.id, {
        'request_id': str(slot_request.id),
        'vehicle_id': str(slot_request.vehicle_id),
        'slot_id': str(chosen_id)
    })
    _notify('Approval', notify_request_approved, slot_request)
    return slot_request


def reject_slot_request(request_id, admin, reason=None):
    if reason is not None and not isinstance(reason, str):
        raise ValidationError('Rejection reason must be a string.')

    slot_request = _get_request(request_id)
    _ensure_pending(slot_request, 'Request is already {status}. Cannot reject.')

    if not _transition_from_pending(slot_request, RequestStatus.REJECTED, rejection_reason=reason or None):
        raise _lost_race(slot_request, 'Request is already {status}. Cannot reject.')
    db.session.commit()

    logger.info(f"Slot request {slot_request.id} rejected")
    record_action('SLOT_REQUEST_REJECTED', admin.id, {
        'request_id': str(slot_request.id),
        'vehicle_id': str(slot_request.vehicle_id),
        'reason': reason
    })
    _notify('Rejection', notify_request_rejected, slot_request, reason)
    return slot_request


def get_slot_request(request_id, actor):
    slot_request = _get_request(request_id)
    if not actor.is_admin:
        _ensure_owner(slot_request, actor, 'view')

    record_action('SLOT_REQUEST_VIEWED', actor.id, {'request_id': str(slot_request.id)})
    return slot_request


def list_slot_requests(actor, status=None, search=None, page=1, per_page=10):
    query = SlotRequest.query.join(SlotRequest.vehicle).join(SlotRequest.user)

    if not actor.is_admin:
        query = query.filter(SlotRequest.user_id == actor.id)

    if status:
        try:
            query = query.filter(SlotRequest.request_status == RequestStatus(status.upper()))
        except ValueError:
            raise ValidationError(f'Invalid status filter: {status}')

    if search:
        pattern = f'%{search}%'
        if actor.is_admin:
            query = query.filter(or_(
                Vehicle.plate_number.ilike(pattern),
                User.email.ilike(pattern),
                User.name.ilike(pattern)
            ))
        else:
            query = query.filter(Vehicle.plate_number.ilike(pattern))

    return query.order_by(SlotRequest.created_at.desc()).paginate(page=page, per_page=per_page, error_out=False)
