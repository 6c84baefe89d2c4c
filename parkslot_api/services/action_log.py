import logging
from flask import has_request_context, request
from db.db import db
from models.action_log import ActionLog

logger = logging.getLogger(__name__)


def record_action(action, user_id=None, details=None):
    """Append an audit row and commit it on its own.

    Called after the primary operation has committed. Failures are logged and
    rolled back, never raised to the caller.
    """
    try:
        log = ActionLog(
            action=action,
            user_id=user_id,
            details=details,
            ip_address=request.remote_addr if has_request_context() else None
        )
        db.session.add(log)
        db.session.commit()
        return log
    except Exception as e:
        logger.error(f"Failed to log action {action}: {str(e)}")
        db.session.rollback()
        return None
