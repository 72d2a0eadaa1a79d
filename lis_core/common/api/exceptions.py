# lis_core/common/api/exceptions.py

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    NotAuthenticated,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def ensure_request_id(request) -> str:
    """
    Ensures request has a stable request_id attribute and returns it.
    Safe to call from middleware and DRF exception handler.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    Canonical error envelope.
    Reusable from Django middleware (JsonResponse) and DRF (Response).
    """
    rid = ensure_request_id(request)
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": rid,
        }
    }


# -------------------------------------------------------------------
# Domain errors
#
# Each one is raised by services with a message the desk staff can act on
# (the exact test, balance or state involved) and optional structured details.
# -------------------------------------------------------------------

class DomainErrorMixin:
    details: Any = None

    def _set_details(self, details: Any) -> None:
        self.details = details


class NotFoundError(DomainErrorMixin, NotFound):
    default_detail = "Resource not found."
    default_code = "not_found"

    def __init__(self, detail=None, *, details: Any = None):
        super().__init__(detail=detail or self.default_detail, code=self.default_code)
        self._set_details(details)


class CapabilityDenied(DomainErrorMixin, PermissionDenied):
    default_detail = "You do not have permission to perform this action."
    default_code = "permission_denied"

    def __init__(self, detail=None, *, details: Any = None):
        super().__init__(detail=detail or self.default_detail, code=self.default_code)
        self._set_details(details)


class DomainError(DomainErrorMixin, APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed."
    default_code = "error"

    def __init__(self, detail=None, *, details: Any = None):
        super().__init__(detail=detail or self.default_detail, code=self.default_code)
        self._set_details(details)


class ValidationFailed(DomainError):
    default_detail = "Invalid input."
    default_code = "validation_error"


class BalanceExceededError(DomainError):
    default_detail = "Amount exceeds the outstanding balance."
    default_code = "balance_exceeded"


class ConflictError(DomainError):
    """
    409 Conflict that still flows through the global exception handler.
    Use when business rules block an action.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"


class InvalidStateError(ConflictError):
    default_detail = "The operation is not allowed in the current state."
    default_code = "invalid_state"


class AlreadyProcessedError(ConflictError):
    default_detail = "Already processed."
    default_code = "already_processed"


class ReferenceUnavailableError(ConflictError):
    default_detail = "A referenced analysis is no longer available."
    default_code = "reference_unavailable"


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    # Truly unhandled error
    if response is None:
        rid = ensure_request_id(request)
        logger.exception("Unhandled API error (request_id=%s)", rid)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
                details=None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    code = _code_for(exc, http_status)

    data = response.data

    # Message + details rules:
    # 1) Domain errors carry their own details
    # 2) {"detail": "...", ...} -> message=detail, details={...without detail}
    # 3) Otherwise -> message="Request failed.", details=data
    message = "Request failed."
    details = data

    if isinstance(data, dict) and "detail" in data:
        message = str(data.get("detail"))
        rest = {k: v for k, v in data.items() if k != "detail"}
        details = rest or None

    if isinstance(exc, DomainErrorMixin):
        details = exc.details

    return Response(
        build_error_envelope(
            request=request,
            code=code,
            message=message,
            details=details,
        ),
        status=http_status,
        headers=response.headers,
    )
