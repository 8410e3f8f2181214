"""
Company registration and employee membership.

db.commit() is the caller's responsibility.
"""
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hollyaid.exceptions import CompanyNotFound, ValidationFailed
from hollyaid.logging_config import get_logger
from hollyaid.models.company import Company, CompanyEmployee, SubscriptionStatus
from hollyaid.utils.timeutils import utcnow

logger = get_logger(__name__)


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationFailed("Invalid email address", details={"email": email})
    return email


async def _domain_taken(db: AsyncSession, domain: str) -> bool:
    existing = await db.scalar(select(Company.id).where(func.lower(Company.email_domain) == domain))
    return existing is not None


def _domain_conflict(domain: str) -> ValidationFailed:
    return ValidationFailed(
        "A company is already registered for this email domain",
        details={"email_domain": domain},
    )


async def register_company(
    db: AsyncSession,
    name: str,
    admin_user_id: uuid.UUID,
    email_domain: str | None = None,
) -> Company:
    """Create a company in the unpaid state; it can book once a plan is active."""
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Company name must not be empty")

    domain = (email_domain or "").strip().lower().lstrip("@") or None
    if domain and await _domain_taken(db, domain):
        raise _domain_conflict(domain)

    company = Company(
        name=name,
        email_domain=domain,
        admin_user_id=admin_user_id,
        subscription_status=SubscriptionStatus.UNPAID.value,
        minutes_included=0,
        minutes_used=0,
    )
    db.add(company)
    try:
        await db.flush()
    except IntegrityError as e:
        # another registration for the same domain won the race
        logger.info("company_domain_conflict", email_domain=domain)
        raise _domain_conflict(domain) from e
    logger.info("company_registered", company_id=str(company.id), email_domain=domain)
    return company


async def add_employee(db: AsyncSession, company_id: uuid.UUID, email: str) -> CompanyEmployee:
    """Invite an employee by email. Re-inviting returns the existing row."""
    company = await db.get(Company, company_id)
    if company is None:
        raise CompanyNotFound(company_id)

    email = _normalize_email(email)
    existing = (await db.execute(
        select(CompanyEmployee).where(
            CompanyEmployee.company_id == company_id,
            CompanyEmployee.email == email,
        )
    )).scalar_one_or_none()
    if existing is not None:
        return existing

    employee = CompanyEmployee(company_id=company_id, email=email, status="invited")
    db.add(employee)
    await db.flush()
    logger.info("employee_invited", company_id=str(company_id), employee_id=str(employee.id))
    return employee


async def accept_employee_invite(db: AsyncSession, user_id: uuid.UUID, email: str) -> list[CompanyEmployee]:
    """Attach the signed-in user to every pending invite for their email."""
    email = _normalize_email(email)
    result = await db.execute(
        select(CompanyEmployee).where(
            CompanyEmployee.email == email,
            CompanyEmployee.status == "invited",
        )
    )
    accepted = list(result.scalars().all())
    now = utcnow()
    for employee in accepted:
        employee.user_id = user_id
        employee.status = "accepted"
        employee.accepted_at = now
    await db.flush()
    if accepted:
        logger.info("employee_invites_accepted", user_id=str(user_id), count=len(accepted))
    return accepted


async def list_employees(db: AsyncSession, company_id: uuid.UUID) -> list[CompanyEmployee]:
    result = await db.execute(
        select(CompanyEmployee)
        .where(CompanyEmployee.company_id == company_id)
        .order_by(CompanyEmployee.invited_at)
    )
    return list(result.scalars().all())
