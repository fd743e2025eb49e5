# ledger/handlers.py
import logging

from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

from .config import get_ledger_settings
from .exceptions import InvalidAccrualInput

logger = logging.getLogger(__name__)


def ledger_exception_handler(exc, context):
    """Shape every error response as {"message": ..., ["errors": ...]}."""
    if isinstance(exc, InvalidAccrualInput):
        logger.warning("Accrual rejected inputs that passed validation: %s", exc)
        return Response({'message': 'Validation failed', 'errors': {'non_field_errors': [str(exc)]}},
                        status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else 'request', exc_info=exc)
        set_rollback()
        body = {'message': 'Server error'}
        if get_ledger_settings().expose_error_detail:
            body['error'] = str(exc)
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, exceptions.ValidationError):
        response.data = {'message': 'Validation failed', 'errors': _as_field_errors(response.data)}
    elif isinstance(exc, Http404):
        response.data = {'message': 'Not found'}
    elif isinstance(exc, PermissionDenied):
        response.data = {'message': 'Permission denied'}
    else:
        detail = response.data.get('detail') if isinstance(response.data, dict) else response.data
        response.data = {'message': str(detail)}
    return response


def _as_field_errors(data):
    if isinstance(data, dict):
        return data
    return {'non_field_errors': data}
