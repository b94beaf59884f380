"""
Exceções de domínio convertidas em respostas JSON pelo app
"""


class ServiceError(Exception):
    status_code = 400
    code = 'ERROR'

    def __init__(self, message, status_code=None, code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self):
        out = {'error': self.message, 'code': self.code}
        if self.details is not None:
            out['details'] = self.details
        return out


class ValidationError(ServiceError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class NotFoundError(ServiceError):
    status_code = 404
    code = 'NOT_FOUND'


class ConflictError(ServiceError):
    status_code = 409
    code = 'CONFLICT'


class InvalidTransitionError(ConflictError):
    code = 'INVALID_TRANSITION'


class CapacityError(ConflictError):
    code = 'INSUFFICIENT_CAPACITY'


class LocationOccupiedError(ConflictError):
    code = 'LOCATION_OCCUPIED'


class ConcurrencyError(ConflictError):
    code = 'VERSION_CONFLICT'


class DuplicateMovementError(ConflictError):
    code = 'DUPLICATE_MOVEMENT'
