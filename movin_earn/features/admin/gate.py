from __future__ import annotations

from typing import Dict, Optional

from movin_earn.core.config import ONE_MONTH, VALID_LOCK_MONTHS, EngineConfig
from movin_earn.core.errors import ContractPaused, InvalidLockPeriod, UnauthorizedAccess, ValidationError
from movin_earn.features.tokens.ledger import TokenCollaborator
from movin_earn.models.state import AdminState


class AdminGate:
    """Pause switch, admin authorization and the lock-period multiplier table."""

    def __init__(self, config: EngineConfig):
        self._config = config

    def is_admin(self, caller: Optional[str]) -> bool:
        return bool(caller) and caller in self._config.admin_accounts

    def require_admin(self, caller: Optional[str]) -> None:
        if not self.is_admin(caller):
            raise UnauthorizedAccess(f"Account {caller!r} is not an administrator")

    def is_paused(self, state: AdminState, token: TokenCollaborator) -> bool:
        return state.paused or token.paused()

    def require_active(self, state: AdminState, token: TokenCollaborator) -> None:
        if state.paused:
            raise ContractPaused()
        if token.paused():
            raise ContractPaused("Token is paused")

    def pause(self, state: AdminState) -> None:
        state.paused = True

    def unpause(self, state: AdminState) -> None:
        state.paused = False

    # Lock periods ----------------------------------------------------------
    @staticmethod
    def validate_lock_months(months: int) -> None:
        if months not in VALID_LOCK_MONTHS:
            raise InvalidLockPeriod(f"Invalid lock period: {months} months")

    @staticmethod
    def lock_duration(months: int) -> int:
        return months * ONE_MONTH

    def multiplier(self, state: AdminState, months: int) -> int:
        return state.lock_multipliers.get(months, months)

    def multipliers(self, state: AdminState) -> Dict[int, int]:
        return {months: self.multiplier(state, months) for months in VALID_LOCK_MONTHS}

    def set_multiplier(self, state: AdminState, months: int, multiplier: int) -> None:
        self.validate_lock_months(months)
        if multiplier < 0:
            raise ValidationError("Multiplier cannot be negative")
        state.lock_multipliers[months] = multiplier
