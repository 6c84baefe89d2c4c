from uuid import UUID


class ApiError(Exception):
    """Base error rendered as ``{"error": ..., "code": ...}`` by the app."""
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(ApiError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class Forbidden(ApiError):
    status_code = 403
    code = 'FORBIDDEN'


class NotFound(ApiError):
    status_code = 404
    code = 'NOT_FOUND'


class Conflict(ApiError):
    status_code = 409
    code = 'CONFLICT'


class InvalidState(ApiError):
    status_code = 409
    code = 'INVALID_STATE'


class NoCompatibleSlot(ApiError):
    status_code = 409
    code = 'NO_COMPATIBLE_SLOT'


def parse_uuid(value, field):
    """Return ``value`` as a UUID or raise ValidationError naming ``field``."""
    if isinstance(value, UUID):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f'{field} is required and must be a string.')
    try:
        return UUID(value)
    except ValueError:
        raise ValidationError(f'{field} is not a valid identifier.')


def require_fields(data, fields):
    """Check that every field is present as a non-empty string."""
    if data is None:
        raise ValidationError('No data provided')
    missing = [f for f in fields if not data.get(f)]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
    wrong_type = [f for f in fields if not isinstance(data[f], str)]
    if wrong_type:
        raise ValidationError(f"Field(s) must be strings: {', '.join(wrong_type)}")
