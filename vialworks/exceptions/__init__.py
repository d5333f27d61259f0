"""Custom exceptions for the VialWorks application."""
from decimal import Decimal


def _fmt_qty(value) -> str:
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return f"{int(value)}"
    return f"{value:.2f}".rstrip('0').rstrip('.')


class VialWorksError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(VialWorksError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(BusinessLogicError):
    """Raised when form or payload fields are missing or invalid."""
    def __init__(self, message="Invalid input", errors=None):
        payload = {'errors': list(errors)} if errors else None
        super().__init__(message, status_code=422, payload=payload)
        self.errors = list(errors or [])


class NotFoundError(VialWorksError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when a deduction would leave a material below zero."""
    def __init__(self, material_name, required, available, material_id=None, shortages=None):
        message = (
            f"Insufficient stock for {material_name}: "
            f"required {_fmt_qty(required)}, available {_fmt_qty(available)}"
        )
        payload = {
            'material_id': material_id,
            'required': str(required),
            'available': str(available),
        }
        if shortages:
            payload['shortages'] = shortages
        super().__init__(message, status_code=409, payload=payload)
        self.material_name = material_name
        self.material_id = material_id
        self.required = required
        self.available = available
        self.shortages = list(shortages or [])


class RemoteError(VialWorksError):
    """Raised when a remote collaborator (store, payment provider) fails."""
    def __init__(self, message="Remote service error", payload=None):
        super().__init__(message, 502, payload)


class UnauthorizedError(VialWorksError):
    """Raised when a caller lacks valid credentials for an action."""
    def __init__(self, message="Unauthorized access", status_code=401):
        super().__init__(message, status_code)
