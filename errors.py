"""
Error taxonomy shared by the services.

Each error carries the HTTP status it is rendered with; main.py turns any
PharmacyError into a `{"success": false, "message": ...}` response.
"""


class PharmacyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PharmacyError):
    status_code = 404


class ValidationError(PharmacyError):
    status_code = 400


class InsufficientStock(PharmacyError):
    status_code = 400


class InvalidState(PharmacyError):
    status_code = 400


class NotAuthenticated(PharmacyError):
    status_code = 401


class AccessDenied(PharmacyError):
    status_code = 403


class ServerError(PharmacyError):
    status_code = 500
