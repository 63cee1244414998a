"""
Error kinds raised by the BloodLink services and store adapters.
Eligibility verdicts are never errors; these cover bad input, missing
records and storage failures.
"""


class BloodLinkError(Exception):
    """Base class for all BloodLink errors"""

    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {'error': self.message}


class ValidationError(BloodLinkError):
    """Bad input: unknown blood type, out-of-range age/units, missing field"""

    status_code = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = dict(errors or {})

    def to_dict(self):
        data = super().to_dict()
        if self.errors:
            data['errors'] = self.errors
        return data


class RequestClosedError(ValidationError):
    """The blood request is no longer OPEN"""

    status_code = 409


class AuthenticationError(BloodLinkError):
    status_code = 401


class NotFoundError(BloodLinkError):
    status_code = 404


class PersistenceError(BloodLinkError):
    """Store read/write failure"""

    status_code = 500


class ConflictError(PersistenceError):
    """A concurrent write changed a record between read and commit"""

    status_code = 409
