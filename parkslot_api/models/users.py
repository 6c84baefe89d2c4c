from enum import Enum
from werkzeug.security import generate_password_hash, check_password_hash
from models.base import db, generate_uuid, utcnow, UUID


class Role(str, Enum):
    USER = 'USER'
    ADMIN = 'ADMIN'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(UUID, primary_key=True, default=generate_uuid)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(Role, name='user_role'), nullable=False, default=Role.USER)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Deletion is an explicit cascade in controllers/admin.py, not an ORM one
    vehicles = db.relationship('Vehicle', back_populates='owner', lazy=True, passive_deletes='all')
    slot_requests = db.relationship('SlotRequest', back_populates='user', lazy=True, passive_deletes='all')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'email': self.email,
            'role': self.role.value,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<User {self.email} ({self.role.value})>'
