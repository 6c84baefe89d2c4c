from db.db import db
from datetime import datetime, timezone
import uuid


def generate_uuid():
    return uuid.uuid4()


def utcnow():
    # Naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


UUID = db.Uuid
