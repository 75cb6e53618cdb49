"""Domain errors for the procurement core and their REST API mapping."""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler


class ProcurementError(Exception):
    """Base class for errors surfaced by the procurement services."""

    status_code = 500
    code = "error"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict:
        data = {"detail": self.message, "code": self.code}
        if self.details:
            data["context"] = self.details
        return data


class ValidationError(ProcurementError):
    """Malformed or missing input; raised before any write."""

    status_code = 400
    code = "validation_error"


class AuthorizationError(ProcurementError):
    status_code = 403
    code = "not_authorized"


class NotFoundError(ProcurementError):
    status_code = 404
    code = "not_found"


class ConflictError(ProcurementError):
    """Well-formed operation that violates a current-state invariant."""

    status_code = 409
    code = "conflict"


class InsufficientStock(ConflictError):
    code = "insufficient_stock"


class OverSupply(ConflictError):
    code = "over_supply"


class AlreadyEscalated(ConflictError):
    code = "already_escalated"


class AlreadyQuarantined(ConflictError):
    code = "already_quarantined"


class InvalidApprovalState(ConflictError):
    code = "invalid_approval_state"


class QuarantinedLot(ConflictError):
    code = "quarantined_lot"


class UninitializedInventory(ProcurementError):
    """No ledger row exists for the (warehouse, item) pair."""

    status_code = 409
    code = "uninitialized_inventory"


def custom_exception_handler(exc, context):
    """Translate domain and Django errors into REST framework responses.

    For other exceptions, follow DRF's default behavior.
    """
    if isinstance(exc, ProcurementError):
        data = exc.as_dict()
        data["status_code"] = exc.status_code
        return Response(data, status=exc.status_code)

    if isinstance(exc, DjangoValidationError):
        exc = DRFValidationError(detail=exc.messages)

    if isinstance(exc, Http404):
        return Response({"detail": "Not found.", "status_code": 404}, status=404)

    response = exception_handler(exc, context)

    # Unhandled exceptions return None and surface as a 500 server error.
    if response is not None:
        if not isinstance(response.data, dict):
            response.data = {"detail": response.data}
        response.data["status_code"] = response.status_code

    return response
