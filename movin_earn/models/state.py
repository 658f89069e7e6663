from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from movin_earn.models.activity import ActivityRecord
from movin_earn.models.premium import PremiumStatus
from movin_earn.models.rate import RateState
from movin_earn.models.referral import ReferralEdge
from movin_earn.models.stake import Stake


@dataclass
class AccountState:
    account: str
    stakes: List[Stake] = field(default_factory=list)
    activity: ActivityRecord = field(default_factory=ActivityRecord)
    referral: ReferralEdge = field(default_factory=ReferralEdge)
    premium: PremiumStatus = field(default_factory=PremiumStatus)
    next_stake_id: int = 1


@dataclass
class AdminState:
    paused: bool = False
    lock_multipliers: Dict[int, int] = field(default_factory=dict)


@dataclass
class EarnState:
    """Everything the engine persists: per-account records plus the global singletons."""

    rates: RateState
    admin: AdminState = field(default_factory=AdminState)
    accounts: Dict[str, AccountState] = field(default_factory=dict)

    def account(self, account: str) -> AccountState:
        """Return the account's records, creating empty ones on first touch."""
        if account not in self.accounts:
            self.accounts[account] = AccountState(account=account)
        return self.accounts[account]

    def peek(self, account: str) -> AccountState:
        """Read-only view: an unknown account gets a detached empty record."""
        existing = self.accounts.get(account)
        return existing if existing is not None else AccountState(account=account)
