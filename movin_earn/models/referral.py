from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional


@dataclass
class ReferralEdge:
    """
    `referrer` is who referred this account (set once). `earned_bonus` and
    `referred_count` describe this account in its role as a referrer.
    """

    referrer: Optional[str] = None
    earned_bonus: int = 0
    referred_count: int = 0
    referrals: List[str] = field(default_factory=list)


class ReferralInfo(NamedTuple):
    referrer: Optional[str]
    earned_bonus: int
    referred_count: int
