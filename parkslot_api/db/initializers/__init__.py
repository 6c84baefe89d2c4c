from db.initializers.admin_initializer import ensure_admin
from db.initializers.parking_initializer import initialize_parking_slots


def run_all_initializers(slots=True):
    """Seed the administrator and, unless ``slots`` is False, the default slot layout."""
    admin = ensure_admin()
    created = initialize_parking_slots() if slots else 0
    return admin, created
