# db/initializers/admin_initializer.py
import os
import logging
from models.users import User, Role
from db.db import db

logger = logging.getLogger(__name__)

def ensure_admin(email=None, password=None, name=None):
    """Create an ADMIN account unless one with this email already exists.

    Any number of admins may exist; this only guarantees the configured one.
    """
    email = email or os.getenv('ADMIN_EMAIL', 'admin@parkslot.local')
    password = password or os.getenv('ADMIN_PASSWORD')
    name = name or os.getenv('ADMIN_NAME', 'Parking Administrator')

    existing = User.query.filter_by(email=email).first()
    if existing:
        if existing.role != Role.ADMIN:
            logger.warning(f"{email} exists but is not an administrator; leaving it unchanged")
        return existing

    if not password:
        raise RuntimeError('ADMIN_PASSWORD must be set to create the administrator account')

    admin = User(name=name, email=email, role=Role.ADMIN)
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    logger.info(f"Administrator {email} created")
    return admin
