class ApiError(Exception):
    """Error that maps onto a JSON ``{'error': message}`` response."""

    status_code = 400

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        data = dict(self.payload or {})
        data['error'] = self.message
        return data


class ValidationError(ApiError):
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class BookingError(ApiError):
    """The booking cannot move to the requested state."""

    status_code = 409


class StorageError(ApiError):
    status_code = 500


def clean_text(value, field):
    """Strip a text field; missing or blank values come back as None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    return value.strip() or None
