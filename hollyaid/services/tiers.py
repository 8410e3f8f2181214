"""
Specialist rate tiers and the minutes calculator.

A completed session is charged to the company in wellness minutes:
session length times the specialist's tier multiplier, rounded up.
Multipliers are Decimals so 60 * 1.6 is exactly 96.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class RateTier(str, Enum):
    STANDARD = "standard"
    ADVANCED = "advanced"
    EXPERT = "expert"
    MASTER = "master"


@dataclass(frozen=True)
class TierInfo:
    tier: RateTier
    name: str
    hourly_rate: Decimal
    platform_fee: Decimal
    specialist_payout: Decimal
    multiplier: Decimal


TIER_CATALOG: dict[RateTier, TierInfo] = {
    RateTier.STANDARD: TierInfo(
        RateTier.STANDARD, "Standard", Decimal("25"), Decimal("5"), Decimal("20"), Decimal("1.0"),
    ),  # 60 min session = 60 min used
    RateTier.ADVANCED: TierInfo(
        RateTier.ADVANCED, "Advanced", Decimal("40"), Decimal("8"), Decimal("32"), Decimal("1.6"),
    ),  # 60 -> 96
    RateTier.EXPERT: TierInfo(
        RateTier.EXPERT, "Expert", Decimal("60"), Decimal("12"), Decimal("48"), Decimal("2.4"),
    ),  # 60 -> 144
    RateTier.MASTER: TierInfo(
        RateTier.MASTER, "Master", Decimal("80"), Decimal("16"), Decimal("64"), Decimal("3.2"),
    ),  # 60 -> 192
}


def normalize_tier(tier: str | RateTier | None) -> RateTier:
    """Map any stored tier value to a known tier; unknown or empty means standard."""
    if isinstance(tier, RateTier):
        return tier
    if not tier:
        return RateTier.STANDARD
    try:
        return RateTier(tier.strip().lower())
    except ValueError:
        return RateTier.STANDARD


def tier_info(tier: str | RateTier | None) -> TierInfo:
    return TIER_CATALOG[normalize_tier(tier)]


def multiplier(tier: str | RateTier | None) -> Decimal:
    return tier_info(tier).multiplier


def minutes_to_deduct(duration_minutes: int, tier: str | RateTier | None) -> int:
    """
    Wellness minutes charged for a session of ``duration_minutes``.

    Raises:
        ValueError: if the duration is negative
    """
    if duration_minutes < 0:
        raise ValueError(f"Session duration cannot be negative: {duration_minutes}")
    return math.ceil(Decimal(duration_minutes) * multiplier(tier))
