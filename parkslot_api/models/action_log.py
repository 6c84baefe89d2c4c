from models.base import db, generate_uuid, utcnow, UUID

class ActionLog(db.Model):
    __tablename__ = 'action_logs'
    id = db.Column(UUID, primary_key=True, default=generate_uuid)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    action = db.Column(db.String(100), nullable=False)  # e.g. 'SLOT_REQUEST_APPROVED'
    details = db.Column(db.JSON)
    user_id = db.Column(UUID, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    ip_address = db.Column(db.String(45))

    def to_dict(self):
        return {
            'id': str(self.id),
            'timestamp': self.timestamp.isoformat(),
            'action': self.action,
            'details': self.details,
            'user_id': str(self.user_id) if self.user_id else None,
            'ip_address': self.ip_address
        }
