from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PremiumStatus:
    """Stored premium record. Expiry is lazy: read through `is_active`."""

    is_premium: bool = False
    amount_paid: int = 0
    expires_at: int = 0

    def is_active(self, now: int) -> bool:
        return self.is_premium and now < self.expires_at
