# ledger/exceptions.py
from rest_framework import exceptions, status


class LedgerError(Exception):
    """Base class for ledger domain errors."""


class InvalidAccrualInput(LedgerError, ValueError):
    """Accrual was asked to work on inputs that break the record invariants."""


class AccrualBypassError(LedgerError):
    """A bulk write tried to change accrual inputs without recomputing interest."""


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'User already exists with this email, username, or phone number'
    default_code = 'conflict'


class InvalidCredentials(exceptions.APIException):
    # Not an AuthenticationFailed: DRF turns those into 403 on views without authenticators
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid email or password'
    default_code = 'invalid_credentials'


class SelfDeletionForbidden(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Cannot delete your own account'
    default_code = 'self_deletion_forbidden'
