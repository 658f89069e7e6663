from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from movin_earn.core.config import EngineConfig
from movin_earn.core.errors import AlreadyReferred, InvalidReferrer
from movin_earn.features.tokens.ledger import TokenCollaborator
from movin_earn.models.referral import ReferralInfo
from movin_earn.models.state import EarnState

logger = logging.getLogger(__name__)


class ReferralGraph:
    """One-way, permanent referrer edges and the bonuses routed along them."""

    def __init__(self, config: EngineConfig, token: TokenCollaborator):
        self._config = config
        self._token = token

    def register(self, state: EarnState, account: str, referrer: Optional[str]) -> int:
        """Link `account` to `referrer` and pay the signup bonus to both.

        Returns the signup bonus paid to each party.
        """
        if not referrer or referrer == account:
            raise InvalidReferrer()
        if state.peek(account).referral.referrer is not None:
            raise AlreadyReferred()

        referee_edge = state.account(account).referral
        referrer_edge = state.account(referrer).referral
        referee_edge.referrer = referrer
        referrer_edge.referrals.append(account)
        referrer_edge.referred_count += 1

        bonus = self._config.referral_signup_bonus
        if bonus > 0:
            self._token.mint(account, bonus)
            self._token.mint(referrer, bonus)
        logger.debug("referral.registered", extra={"account": account, "referrer": referrer})
        return bonus

    def info(self, state: EarnState, account: str) -> ReferralInfo:
        edge = state.peek(account).referral
        return ReferralInfo(edge.referrer, edge.earned_bonus, edge.referred_count)

    def referrals(self, state: EarnState, account: str) -> List[str]:
        return list(state.peek(account).referral.referrals)

    def bonus_for(self, reward: int) -> int:
        return reward * self._config.referral_bonus_bps // 10_000

    def route_bonus(self, state: EarnState, account: str, reward: int) -> Tuple[Optional[str], int]:
        """Pay the referrer's share of a reward `account` just earned.

        The share is minted on top of the referee's reward, never taken from it.
        """
        referrer = state.peek(account).referral.referrer
        if referrer is None:
            return None, 0
        bonus = self.bonus_for(reward)
        if bonus <= 0:
            return referrer, 0
        self._token.mint(referrer, bonus)
        state.account(referrer).referral.earned_bonus += bonus
        return referrer, bonus
