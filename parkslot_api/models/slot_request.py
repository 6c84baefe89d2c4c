from enum import Enum
from sqlalchemy import text
from models.base import db, generate_uuid, utcnow, UUID


class RequestStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    CANCELLED = 'CANCELLED'


# A vehicle holds at most one request in these states
ACTIVE_STATUSES = (RequestStatus.PENDING, RequestStatus.APPROVED)

_ACTIVE_WHERE = text("request_status IN ('PENDING', 'APPROVED')")


class SlotRequest(db.Model):
    __tablename__ = 'slot_requests'
    __table_args__ = (
        db.Index(
            'uq_slot_requests_active_vehicle',
            'vehicle_id',
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    id = db.Column(UUID, primary_key=True, default=generate_uuid)
    request_status = db.Column(db.Enum(RequestStatus, name='request_status'), nullable=False, default=RequestStatus.PENDING)
    user_id = db.Column(UUID, db.ForeignKey('users.id'), nullable=False, index=True)
    vehicle_id = db.Column(UUID, db.ForeignKey('vehicles.id'), nullable=False, index=True)

    # Set together on approval and never otherwise
    slot_id = db.Column(UUID, db.ForeignKey('parking_slots.id', ondelete='SET NULL'), nullable=True, index=True)
    assigned_slot_number = db.Column(db.String(50), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)

    rejection_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User', back_populates='slot_requests')
    vehicle = db.relationship('Vehicle', back_populates='slot_requests')
    slot = db.relationship('ParkingSlot', back_populates='slot_requests')

    @property
    def is_active(self):
        return self.request_status in ACTIVE_STATUSES

    def to_dict(self, include_relations=False):
        data = {
            'id': str(self.id),
            'request_status': self.request_status.value,
            'user_id': str(self.user_id),
            'vehicle_id': str(self.vehicle_id),
            'slot_id': str(self.slot_id) if self.slot_id else None,
            'assigned_slot_number': self.assigned_slot_number,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'rejection_reason': self.rejection_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
        if include_relations:
            data['vehicle'] = {
                'id': str(self.vehicle.id),
                'plate_number': self.vehicle.plate_number,
                'vehicle_type': self.vehicle.vehicle_type,
                'size': self.vehicle.size
            }
            data['user'] = {
                'id': str(self.user.id),
                'name': self.user.name,
                'email': self.user.email
            }
            data['slot'] = {
                'id': str(self.slot.id),
                'slot_number': self.slot.slot_number,
                'location': self.slot.location
            } if self.slot else None
        return data

    def __repr__(self):
        return f'<SlotRequest {self.id} - {self.request_status.value}>'
