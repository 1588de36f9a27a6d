import logging
import traceback
from typing import Any, Optional

from django.conf import settings
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .response import APIResponse, get_correlation_id

logger = logging.getLogger(__name__)


class ValidationError(exceptions.APIException):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request.'
    default_code = 'VALIDATION_ERROR'


class EmptyCartError(ValidationError):
    default_detail = 'Cart is empty or not found.'
    default_code = 'EMPTY_CART'


class NotFoundError(exceptions.APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'NOT_FOUND'


class ConflictError(exceptions.APIException):
    """Resource is in a state that forbids the operation (already paid, duplicate name)."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflict with the current state of the resource.'
    default_code = 'CONFLICT'


class InvoiceAlreadyPaidError(ConflictError):
    default_detail = 'Invoice already paid.'
    default_code = 'INVOICE_ALREADY_PAID'


class InvoiceCancelledError(ConflictError):
    default_detail = 'Invoice is cancelled.'
    default_code = 'INVOICE_CANCELLED'


class DuplicateInvoiceError(ConflictError):
    default_detail = 'Invoice already exists for this order.'
    default_code = 'INVOICE_EXISTS'


class UpstreamProcessorError(exceptions.APIException):
    """A payment processor call failed, timed out or answered with an error body."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment processor request failed.'
    default_code = 'UPSTREAM_PROCESSOR_ERROR'

    def __init__(self, detail=None, code=None, processor=None):
        super().__init__(detail, code)
        self.processor = processor


class AuthError(exceptions.APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication credentials were not provided or are invalid.'
    default_code = 'AUTH_ERROR'


class PermissionDeniedError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'FORBIDDEN'


def _message_from(detail: Any) -> str:
    if isinstance(detail, (list, tuple)) and detail:
        return _message_from(detail[0])
    if isinstance(detail, dict) and detail:
        key, value = next(iter(detail.items()))
        return f"{key}: {_message_from(value)}"
    return str(detail)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Optional[Response]:
    """Single formatting boundary for every error raised by a view."""
    request = context.get('request')
    correlation_id = get_correlation_id(request) if request is not None else None

    if isinstance(exc, Http404):
        exc = NotFoundError(str(exc) or None)

    response = exception_handler(exc, context)

    if response is None:
        logger.error(f"Unhandled error in {context.get('view').__class__.__name__}: {exc}", exc_info=exc)
        extra = {}
        if settings.DEBUG:
            extra['debug'] = {
                'exception': repr(exc),
                'stack': traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return APIResponse.error(
            error_code='INTERNAL_SERVER_ERROR',
            message='Internal server error',
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={'type': exc.__class__.__name__},
            correlation_id=correlation_id,
            **extra,
        )

    code = getattr(exc, 'default_code', 'error')
    errors = None
    if isinstance(response.data, dict) and 'detail' not in response.data:
        errors = [{'field': field, 'message': _message_from(value)} for field, value in response.data.items()]

    details = {'type': exc.__class__.__name__}
    if getattr(exc, 'processor', None):
        details['processor'] = exc.processor
        logger.warning(f"{exc.processor} request failed: {exc.detail}")

    extra = {}
    if settings.DEBUG:
        extra['debug'] = {'exception': repr(exc)}

    formatted = APIResponse.error(
        error_code=str(code).upper(),
        message=_message_from(response.data.get('detail', response.data) if isinstance(response.data, dict) else response.data),
        status_code=response.status_code,
        details=details,
        errors=errors,
        correlation_id=correlation_id,
        **extra,
    )
    for header, value in response.items():
        formatted[header] = value
    return formatted
