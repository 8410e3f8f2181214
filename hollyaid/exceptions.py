"""
Custom exceptions for the HollyAid booking core.
"""

from typing import Any


class HollyAidError(Exception):
    """Base exception for HollyAid application."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# === Validation ===

class InvalidTransition(HollyAidError):
    """Raised when a booking event is not permitted from its current status."""

    def __init__(self, booking_id: Any, current_status: str, event: str):
        super().__init__(
            message=f"Cannot {event} booking in status '{current_status}'",
            details={
                "booking_id": str(booking_id) if booking_id is not None else None,
                "current_status": current_status,
                "event": event,
            }
        )


class Unauthorized(HollyAidError):
    """Raised when the actor is not a party allowed to perform the action."""

    def __init__(self, message: str = "Actor is not allowed to perform this action", **details: Any):
        super().__init__(message=message, details=details)


class CapExceeded(HollyAidError):
    """Raised when a party has used up its message budget on a booking."""

    def __init__(self, booking_id: Any, sender_type: str, cap: int):
        super().__init__(
            message=f"Message limit reached ({cap} messages)",
            details={
                "booking_id": str(booking_id),
                "sender_type": sender_type,
                "cap": cap,
            }
        )


class ValidationFailed(HollyAidError):
    """Raised when input is well-formed but violates a business rule."""
    pass


class SubscriptionInactive(HollyAidError):
    """Raised when a company without an active subscription tries to book."""

    def __init__(self, company_id: Any, status: str):
        super().__init__(
            message=f"Company subscription is not active: {status}",
            details={"company_id": str(company_id), "subscription_status": status}
        )


class InvalidInvite(HollyAidError):
    """Raised when an invitation token is unknown, used or expired."""
    pass


# === Not found ===

class NotFound(HollyAidError):
    """Raised when a referenced entity does not exist."""

    entity = "Entity"

    def __init__(self, identifier: Any):
        super().__init__(
            message=f"{self.entity} not found: {identifier}",
            details={"identifier": str(identifier)}
        )


class BookingNotFound(NotFound):
    entity = "Booking"


class SpecialistNotFound(NotFound):
    entity = "Specialist"


class CompanyNotFound(NotFound):
    entity = "Company"


class PlanNotFound(NotFound):
    entity = "Plan"


class PayoutNotFound(NotFound):
    entity = "Payout request"


# === Payouts ===

class PayoutAlreadyProcessed(HollyAidError):
    """Raised when an admin acts on a payout request that is no longer pending."""

    def __init__(self, payout_id: Any, status: str):
        super().__init__(
            message=f"Payout request already {status}",
            details={"payout_id": str(payout_id), "status": status}
        )


# === Persistence ===

class PersistenceUnavailable(HollyAidError):
    """Raised when a write could not be confirmed by the database."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(
            message=message,
            details={"original_error": str(original_error) if original_error else None}
        )
        self.original_error = original_error


class LedgerWriteFailed(PersistenceUnavailable):
    """Raised when the company minutes ledger could not be updated."""
    pass


# === Outbound ===

class NotificationFailed(HollyAidError):
    """Raised by notification transports; always caught by the dispatcher."""
    pass


class PaymentAuthorityError(HollyAidError):
    """Raised when the payment authority rejects or fails a checkout request."""
    pass
