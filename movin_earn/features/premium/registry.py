from __future__ import annotations

import logging

from movin_earn.core.config import EngineConfig
from movin_earn.core.errors import InvalidPremiumAmount
from movin_earn.models.premium import PremiumStatus
from movin_earn.models.state import AccountState

logger = logging.getLogger(__name__)


class PremiumRegistry:
    """Premium flag and expiry per account.

    Expiry is lazy: the stored flag stays set after `expires_at`, readers go
    through `is_premium`. An explicit downgrade clears the record eagerly.
    """

    def __init__(self, config: EngineConfig):
        self._config = config

    def is_premium(self, record: AccountState, now: int) -> bool:
        return record.premium.is_active(now)

    def duration_for(self, amount_paid: int) -> int:
        if amount_paid == self._config.premium_monthly_price:
            return self._config.premium_monthly_duration
        if amount_paid == self._config.premium_yearly_price:
            return self._config.premium_yearly_duration
        raise InvalidPremiumAmount(
            f"Premium payment must be {self._config.premium_monthly_price} (monthly) "
            f"or {self._config.premium_yearly_price} (yearly), got {amount_paid}"
        )

    def set_status(self, record: AccountState, is_premium: bool, amount_paid: int, now: int) -> PremiumStatus:
        if not is_premium:
            record.premium = PremiumStatus()
            return record.premium

        duration = self.duration_for(amount_paid)
        record.premium = PremiumStatus(is_premium=True, amount_paid=amount_paid, expires_at=now + duration)
        logger.debug("premium.set", extra={"account": record.account, "expires_at": record.premium.expires_at})
        return record.premium
