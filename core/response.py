"""
Standardized API Response Wrapper

Every endpoint answers with the same envelope:
- success flag and human readable message
- data payload (success) or error block (failure)
- timestamp and correlation id for request tracking
"""

import uuid
from typing import Any, Dict, Optional, List
from rest_framework import status
from rest_framework.response import Response
from django.utils import timezone


class APIResponse:
    """
    Standardized API response wrapper for consistent response formatting.
    """

    @staticmethod
    def success(
        data: Any = None,
        message: str = "Success",
        status_code: int = status.HTTP_200_OK,
        correlation_id: Optional[str] = None,
        **kwargs
    ) -> Response:
        """
        Generate a success response.

        Example:
            return APIResponse.success(
                data={'orderId': order.id},
                message='Order retrieved'
            )
        """
        response_data = {
            'success': True,
            'message': message,
            'data': data,
            'timestamp': timezone.now().isoformat(),
            'correlation_id': correlation_id or str(uuid.uuid4()),
        }
        response_data.update(kwargs)
        return Response(response_data, status=status_code)

    @staticmethod
    def error(
        error_code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[Dict[str, Any]] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        correlation_id: Optional[str] = None,
        **kwargs
    ) -> Response:
        """
        Generate an error response.

        Args:
            error_code: Unique error code (e.g., 'INVOICE_ALREADY_PAID', 'NOT_FOUND')
            message: Human-readable error message
            status_code: HTTP status code (default: 400)
            details: Additional error details
            errors: List of field-level validation errors
            correlation_id: Optional request correlation ID for tracking
        """
        response_data = {
            'success': False,
            'message': message,
            'error': {
                'code': error_code,
                'message': message,
            },
            'timestamp': timezone.now().isoformat(),
            'correlation_id': correlation_id or str(uuid.uuid4()),
        }

        if details:
            response_data['error']['details'] = details

        if errors:
            response_data['errors'] = errors

        response_data.update(kwargs)
        return Response(response_data, status=status_code)

    @staticmethod
    def created(
        data: Dict[str, Any],
        message: str = "Resource created successfully",
        correlation_id: Optional[str] = None
    ) -> Response:
        """Generate a 201 Created response."""
        return APIResponse.success(
            data=data,
            message=message,
            status_code=status.HTTP_201_CREATED,
            correlation_id=correlation_id
        )

    @staticmethod
    def accepted(
        data: Dict[str, Any],
        message: str = "Payment initiated",
        correlation_id: Optional[str] = None
    ) -> Response:
        """
        Generate a 202 Accepted response for a payment handed to a processor.

        The payment stays PENDING until the processor's webhook (or a status
        poll) confirms it; ``data`` carries what the client needs to follow it.
        """
        return APIResponse.success(
            data=data,
            message=message,
            status_code=status.HTTP_202_ACCEPTED,
            correlation_id=correlation_id
        )

    @staticmethod
    def not_found(
        message: str = "Resource not found",
        correlation_id: Optional[str] = None
    ) -> Response:
        return APIResponse.error(
            error_code='NOT_FOUND',
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            correlation_id=correlation_id
        )


def get_correlation_id(request) -> str:
    """
    Extract or generate a correlation ID for request tracking.

    Honors an incoming ``X-Correlation-ID`` header so a client can follow a
    payment across pay-invoice, webhook and polling calls.
    """
    correlation_id = request.META.get('HTTP_X_CORRELATION_ID')
    if correlation_id:
        return correlation_id
    return str(uuid.uuid4())
