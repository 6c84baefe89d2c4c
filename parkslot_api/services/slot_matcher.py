from sqlalchemy import func, or_
from models.parking_slot import ParkingSlot, SlotStatus


def compatible_slots_query(vehicle):
    """Slots that may serve ``vehicle`` right now.

    AVAILABLE, same size as stored, and either the same vehicle type or the
    case-insensitive wildcard type ``any``.
    """
    return ParkingSlot.query.filter(
        ParkingSlot.status == SlotStatus.AVAILABLE,
        ParkingSlot.size == vehicle.size,
        or_(
            ParkingSlot.vehicle_type == vehicle.vehicle_type,
            func.lower(ParkingSlot.vehicle_type) == 'any'
        )
    )


def find_compatible_slot(vehicle, slot_id=None, exclude_ids=()):
    """Pick a slot for ``vehicle`` without changing anything.

    With ``slot_id`` only that slot is checked against the compatibility
    predicate. Otherwise the oldest compatible slot wins, ties broken by slot
    number. Returns ``None`` when nothing qualifies.
    """
    query = compatible_slots_query(vehicle)
    if slot_id is not None:
        return query.filter(ParkingSlot.id == slot_id).first()

    if exclude_ids:
        query = query.filter(ParkingSlot.id.notin_(list(exclude_ids)))
    return query.order_by(ParkingSlot.created_at.asc(), ParkingSlot.slot_number.asc()).first()
