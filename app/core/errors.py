"""Domain exceptions for the scheduling core and their HTTP mapping.

Services raise these; they never raise HTTPException. `register_exception_handlers`
turns them into JSON responses of the form ``{"detail": ..., "error": <code>}``.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PracticeError(Exception):
    """Base class for every error the core reports to its callers."""

    code = "practice_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ---------------------------------------------------------------------------
# Validation errors: rejected before any persistence attempt
# ---------------------------------------------------------------------------

class BookingValidationError(PracticeError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NoServicesSelected(BookingValidationError):
    code = "no_services_selected"

    def __init__(self):
        super().__init__("Please select at least one service")


class NoPractitionerSelected(BookingValidationError):
    code = "no_practitioner_selected"

    def __init__(self):
        super().__init__("Please select a practitioner")


class IncompleteExternalClient(BookingValidationError):
    code = "incomplete_external_client"

    def __init__(self, missing_fields: list[str]):
        super().__init__(
            f"External client is missing required fields: {', '.join(missing_fields)}",
            {"missing_fields": missing_fields},
        )
        self.missing_fields = missing_fields


class NoClientSelected(BookingValidationError):
    code = "no_client_selected"

    def __init__(self):
        super().__init__("Please select a client or choose external client")


class InvalidDuration(BookingValidationError):
    code = "invalid_duration"

    def __init__(self, duration_minutes: int):
        super().__init__(
            f"Requested duration must be positive, got {duration_minutes} minutes",
            {"duration_minutes": duration_minutes},
        )


class InvalidQuantity(PracticeError):
    code = "invalid_quantity"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, field: str, value: int):
        super().__init__(f"Invalid {field}: {value}", {field: value})


# ---------------------------------------------------------------------------
# Lookup errors
# ---------------------------------------------------------------------------

class NotFoundError(PracticeError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AppointmentNotFound(NotFoundError):
    code = "appointment_not_found"

    def __init__(self, appointment_id: UUID):
        super().__init__("Appointment not found", {"appointment_id": str(appointment_id)})


class ServiceNotFound(NotFoundError):
    code = "service_not_found"

    def __init__(self, service_ids: list[UUID]):
        super().__init__(
            "One or more services were not found",
            {"service_ids": [str(s) for s in service_ids]},
        )


class PractitionerNotFound(NotFoundError):
    code = "practitioner_not_found"

    def __init__(self, practitioner_id: UUID):
        super().__init__("Practitioner not found", {"practitioner_id": str(practitioner_id)})


class ClientNotFound(NotFoundError):
    code = "client_not_found"

    def __init__(self, client_id: UUID):
        super().__init__("Client not found", {"client_id": str(client_id)})


class InventoryItemNotFound(NotFoundError):
    code = "inventory_item_not_found"

    def __init__(self, item_id: UUID):
        super().__init__("Inventory item not found", {"item_id": str(item_id)})


# ---------------------------------------------------------------------------
# Conflict / consistency / permission errors
# ---------------------------------------------------------------------------

class SlotUnavailable(PracticeError):
    code = "slot_unavailable"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "The requested time slot is no longer available", details=None):
        super().__init__(message, details)


class InsufficientStock(PracticeError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, item_id: UUID, item_name: str, required: int, available: int):
        super().__init__(
            f"Insufficient stock for {item_name}: need {required}, have {available}",
            {
                "item_id": str(item_id),
                "item_name": item_name,
                "required": required,
                "available": available,
            },
        )
        self.item_id = item_id
        self.required = required
        self.available = available


class PermissionDenied(PracticeError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidTransition(PracticeError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move appointment from {current} to {target}",
            {"current_status": current, "target_status": target},
        )


async def practice_error_handler(request: Request, exc: PracticeError) -> JSONResponse:
    logger.info("%s rejected on %s: %s", exc.code, request.url.path, exc.message)
    body = {"detail": exc.message, "error": exc.code}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PracticeError, practice_error_handler)
