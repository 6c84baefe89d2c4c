from models.base import db, generate_uuid, utcnow, UUID

class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(UUID, primary_key=True, default=generate_uuid)
    plate_number = db.Column(db.String(20), unique=True, nullable=False)
    vehicle_type = db.Column(db.String(50), nullable=False)  # 'car', 'motorcycle', 'truck'
    size = db.Column(db.String(20), nullable=False)  # 'small', 'medium', 'large'
    other_attributes = db.Column(db.JSON, default=dict)
    user_id = db.Column(UUID, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    owner = db.relationship('User', back_populates='vehicles')
    slot_requests = db.relationship('SlotRequest', back_populates='vehicle', lazy=True, passive_deletes='all')

    def to_dict(self):
        return {
            'id': str(self.id),
            'plate_number': self.plate_number,
            'vehicle_type': self.vehicle_type,
            'size': self.size,
            'other_attributes': self.other_attributes or {},
            'user_id': str(self.user_id),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Vehicle {self.plate_number} ({self.size} {self.vehicle_type})>'
