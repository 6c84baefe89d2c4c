# db/initializers/parking_initializer.py
import logging
from models.parking_slot import ParkingSlot, SlotStatus
from db.db import db

logger = logging.getLogger(__name__)

# (prefix, count, size, vehicle_type, location)
DEFAULT_LAYOUT = [
    ('A', 10, 'medium', 'car', 'Level 1 - North'),
    ('B', 4, 'large', 'truck', 'Level 1 - Loading Bay'),
    ('C', 8, 'small', 'motorcycle', 'Level 1 - South'),
    ('D', 4, 'medium', 'any', 'Level 2 - Visitors'),
]

def initialize_parking_slots(layout=DEFAULT_LAYOUT):
    """Initialize parking slots in the database if they don't already exist."""
    if ParkingSlot.query.count() > 0:
        logger.info("Parking slots already initialized")
        return 0

    created = 0
    for prefix, count, size, vehicle_type, location in layout:
        for i in range(1, count + 1):
            db.session.add(ParkingSlot(
                slot_number=f'{prefix}-{i:02d}',
                size=size,
                vehicle_type=vehicle_type,
                location=location,
                status=SlotStatus.AVAILABLE
            ))
            created += 1

    db.session.commit()
    logger.info(f"Parking slots initialized successfully ({created} slots)")
    return created
