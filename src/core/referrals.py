from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Protocol


class ReferralLike(Protocol):
    bonus_amount: Optional[Decimal]
    is_claimed: bool


@dataclass(frozen=True)
class ReferralStats:
    total: int
    claimed: int
    pending: int
    earnings: Decimal


def summarize_referrals(records: Iterable[ReferralLike]) -> ReferralStats:
    """Counts and claimed earnings for a list of referral records."""
    records = list(records)
    claimed = [r for r in records if r.is_claimed]
    earnings = sum(
        (Decimal(r.bonus_amount or 0) for r in claimed), Decimal(0)
    )
    return ReferralStats(
        total=len(records),
        claimed=len(claimed),
        pending=len(records) - len(claimed),
        earnings=earnings,
    )
