from enum import Enum
from models.base import db, generate_uuid, utcnow, UUID


class SlotStatus(str, Enum):
    AVAILABLE = 'AVAILABLE'
    UNAVAILABLE = 'UNAVAILABLE'
    MAINTENANCE = 'MAINTENANCE'


class ParkingSlot(db.Model):
    __tablename__ = 'parking_slots'

    id = db.Column(UUID, primary_key=True, default=generate_uuid)
    slot_number = db.Column(db.String(50), unique=True, nullable=False)
    size = db.Column(db.String(20), nullable=False)
    vehicle_type = db.Column(db.String(50), nullable=False)  # 'any' accepts every type
    status = db.Column(db.Enum(SlotStatus, name='slot_status'), nullable=False, default=SlotStatus.AVAILABLE)
    location = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    slot_requests = db.relationship('SlotRequest', back_populates='slot', lazy=True)

    def to_dict(self):
        return {
            'id': str(self.id),
            'slot_number': self.slot_number,
            'size': self.size,
            'vehicle_type': self.vehicle_type,
            'status': self.status.value,
            'location': self.location,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<ParkingSlot {self.slot_number} ({self.size}/{self.vehicle_type}) - {self.status.value}>'
