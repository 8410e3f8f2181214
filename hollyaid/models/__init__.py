from hollyaid.models.company import Company, CompanyEmployee, SubscriptionStatus
from hollyaid.models.specialist import Specialist, SpecialistInvite
from hollyaid.models.booking import Booking, BookingStatus, SessionType
from hollyaid.models.ledger import MinutesLedgerEntry
from hollyaid.models.message import BookingMessage, BookingMessageRead, SenderType
from hollyaid.models.activity import AdminActivityLog
from hollyaid.models.payout import PayoutRequest, PayoutStatus

__all__ = [
    "Company",
    "CompanyEmployee",
    "SubscriptionStatus",
    "Specialist",
    "SpecialistInvite",
    "Booking",
    "BookingStatus",
    "SessionType",
    "MinutesLedgerEntry",
    "BookingMessage",
    "BookingMessageRead",
    "SenderType",
    "AdminActivityLog",
    "PayoutRequest",
    "PayoutStatus",
]
