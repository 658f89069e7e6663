"""
movin_earn/features/persistence/repository.py

SQL persistence for EarnState.

Handles:
- Writing a full snapshot, or only the records of the accounts an operation touched
- Rebuilding an EarnState from the tables (reverse referral lists included)
- Appending new token ledger entries and rewriting the balances they moved
- SqlStateStore, the store the engine calls after every committed mutation
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from movin_earn.core.database import (
    create_all_tables,
    earn_activity,
    earn_activity_history,
    earn_admin_state,
    earn_lock_multipliers,
    earn_premium,
    earn_rate_state,
    earn_referrals,
    earn_stakes,
    earn_token_allowances,
    earn_token_balances,
    earn_token_ledger,
    earn_token_state,
    get_db_session,
)
from movin_earn.features.tokens.ledger import InMemoryToken, LedgerEntry
from movin_earn.models.activity import ActivityEntry, ActivityRecord
from movin_earn.models.premium import PremiumStatus
from movin_earn.models.rate import RateState
from movin_earn.models.referral import ReferralEdge
from movin_earn.models.stake import Stake
from movin_earn.models.state import AccountState, AdminState, EarnState

logger = logging.getLogger(__name__)

SINGLETON_ID = 1
_ACCOUNT_TABLES = (earn_stakes, earn_activity, earn_activity_history, earn_referrals, earn_premium)
HISTORY_KINDS = ("steps", "mets")


def save_state(session: Session, state: EarnState, accounts: Optional[Iterable[str]] = None) -> None:
    """Write the global singletons and the given accounts (every account when None)."""
    _save_globals(session, state)

    if accounts is None:
        for table in _ACCOUNT_TABLES:
            session.execute(delete(table))
        targets = list(state.accounts)
    else:
        targets = list(accounts)
        if targets:
            for table in _ACCOUNT_TABLES:
                session.execute(delete(table).where(table.c.account.in_(targets)))

    for account in targets:
        record = state.accounts.get(account)
        if record is not None:
            _insert_account(session, state, record)


def load_state(session: Session) -> Optional[EarnState]:
    """Rebuild the persisted state, or None when nothing was saved yet."""
    rate_row = session.execute(select(earn_rate_state).where(earn_rate_state.c.id == SINGLETON_ID)).first()
    if rate_row is None:
        return None

    state = EarnState(
        rates=RateState(
            base_steps_rate=int(rate_row.base_steps_rate),
            base_mets_rate=int(rate_row.base_mets_rate),
            last_decay_timestamp=rate_row.last_decay_timestamp,
        ),
        admin=_load_admin(session),
    )

    for row in session.execute(select(earn_activity)):
        record = state.account(row.account)
        record.next_stake_id = row.next_stake_id
        record.activity = ActivityRecord(
            daily_steps=row.daily_steps,
            daily_mets=row.daily_mets,
            last_updated=row.last_updated,
            last_day_reset=row.last_day_reset,
            last_meal_claim=row.last_meal_claim,
        )

    history = session.execute(
        select(earn_activity_history).order_by(
            earn_activity_history.c.account, earn_activity_history.c.kind, earn_activity_history.c.position
        )
    )
    for row in history:
        activity = state.account(row.account).activity
        target = activity.steps_history if row.kind == "steps" else activity.mets_history
        target.append(ActivityEntry(value=row.value, timestamp=row.timestamp))

    for row in session.execute(select(earn_premium)):
        state.account(row.account).premium = PremiumStatus(
            is_premium=row.is_premium,
            amount_paid=int(row.amount_paid),
            expires_at=row.expires_at,
        )

    stakes = session.execute(
        select(earn_stakes).order_by(earn_stakes.c.account, earn_stakes.c.position)
    )
    for row in stakes:
        state.account(row.account).stakes.append(
            Stake(
                stake_id=row.stake_id,
                amount=int(row.amount),
                start_time=row.start_time,
                lock_duration=row.lock_duration,
                last_claimed=row.last_claimed,
                lock_months=row.lock_months,
            )
        )

    referred: Dict[str, List[Tuple[int, str]]] = {}
    for row in session.execute(select(earn_referrals)):
        state.account(row.account).referral = ReferralEdge(
            referrer=row.referrer,
            earned_bonus=int(row.earned_bonus),
            referred_count=row.referred_count,
        )
        if row.referrer is not None:
            position = row.referred_position if row.referred_position is not None else 0
            referred.setdefault(row.referrer, []).append((position, row.account))
    for referrer, entries in referred.items():
        state.account(referrer).referral.referrals = [account for _, account in sorted(entries)]

    logger.info("persistence.state_loaded", extra={"accounts": len(state.accounts)})
    return state


def save_token(session: Session, token: InMemoryToken, since: int = 0) -> int:
    """Append ledger entries from position `since` and rewrite what they moved.

    Returns the ledger position persisted so far.
    """
    entries = token.entries_since(since)
    touched = set()
    for offset, entry in enumerate(entries):
        session.execute(
            insert(earn_token_ledger).values(
                sequence=since + offset,
                event_type=entry.event_type,
                amount=str(entry.amount),
                sender=entry.sender,
                recipient=entry.recipient,
            )
        )
        touched.update(a for a in (entry.sender, entry.recipient) if a is not None)

    if touched:
        owners = sorted(touched)
        session.execute(delete(earn_token_balances).where(earn_token_balances.c.account.in_(owners)))
        session.execute(delete(earn_token_allowances).where(earn_token_allowances.c.owner.in_(owners)))
        for owner in owners:
            balance = token.balance_of(owner)
            if balance:
                session.execute(insert(earn_token_balances).values(account=owner, balance=str(balance)))
            for spender, amount in sorted(token.allowances_of(owner).items()):
                if amount:
                    session.execute(
                        insert(earn_token_allowances).values(owner=owner, spender=spender, amount=str(amount))
                    )

    session.execute(delete(earn_token_state))
    session.execute(insert(earn_token_state).values(id=SINGLETON_ID, paused=token.paused()))
    return since + len(entries)


def load_token(session: Session) -> Optional[InMemoryToken]:
    """Rebuild the token collaborator, or None when it was never saved."""
    row = session.execute(select(earn_token_state).where(earn_token_state.c.id == SINGLETON_ID)).first()
    if row is None:
        return None

    balances = {r.account: int(r.balance) for r in session.execute(select(earn_token_balances))}
    allowances = {(r.owner, r.spender): int(r.amount) for r in session.execute(select(earn_token_allowances))}
    entries = [
        LedgerEntry(r.event_type, int(r.amount), sender=r.sender, recipient=r.recipient)
        for r in session.execute(select(earn_token_ledger).order_by(earn_token_ledger.c.sequence))
    ]
    logger.info("persistence.token_loaded", extra={"holders": len(balances), "entries": len(entries)})
    return InMemoryToken.from_records(balances, allowances, entries, paused=bool(row.paused))


class SqlStateStore:
    """Persists engine state and the token through `get_db_session` after each committed mutation."""

    def __init__(self, create_tables: bool = True):
        if create_tables:
            create_all_tables()
        self._ledger_position = 0

    def save(self, state: EarnState, accounts: Iterable[str], token: Optional[InMemoryToken] = None) -> None:
        position = self._ledger_position
        with get_db_session() as session:
            save_state(session, state, accounts)
            if token is not None:
                position = save_token(session, token, self._ledger_position)
        self._ledger_position = position

    def load(self) -> Optional[EarnState]:
        with get_db_session() as session:
            return load_state(session)

    def load_token(self) -> Optional[InMemoryToken]:
        with get_db_session() as session:
            token = load_token(session)
        if token is not None:
            self._ledger_position = token.ledger_length
        return token


# Internal helpers ----------------------------------------------------------
def _save_globals(session: Session, state: EarnState) -> None:
    session.execute(delete(earn_rate_state))
    session.execute(
        insert(earn_rate_state).values(
            id=SINGLETON_ID,
            base_steps_rate=str(state.rates.base_steps_rate),
            base_mets_rate=str(state.rates.base_mets_rate),
            last_decay_timestamp=state.rates.last_decay_timestamp,
        )
    )
    session.execute(delete(earn_admin_state))
    session.execute(insert(earn_admin_state).values(id=SINGLETON_ID, paused=state.admin.paused))
    session.execute(delete(earn_lock_multipliers))
    for months, multiplier in sorted(state.admin.lock_multipliers.items()):
        session.execute(insert(earn_lock_multipliers).values(months=months, multiplier=multiplier))


def _load_admin(session: Session) -> AdminState:
    row = session.execute(select(earn_admin_state).where(earn_admin_state.c.id == SINGLETON_ID)).first()
    multipliers = {r.months: r.multiplier for r in session.execute(select(earn_lock_multipliers))}
    return AdminState(paused=bool(row.paused) if row is not None else False, lock_multipliers=multipliers)


def _insert_account(session: Session, state: EarnState, record: AccountState) -> None:
    account = record.account
    activity = record.activity
    session.execute(
        insert(earn_activity).values(
            account=account,
            daily_steps=activity.daily_steps,
            daily_mets=activity.daily_mets,
            last_updated=activity.last_updated,
            last_day_reset=activity.last_day_reset,
            last_meal_claim=activity.last_meal_claim,
            next_stake_id=record.next_stake_id,
        )
    )
    for kind, entries in zip(HISTORY_KINDS, (activity.steps_history, activity.mets_history)):
        for position, entry in enumerate(entries):
            session.execute(
                insert(earn_activity_history).values(
                    account=account, kind=kind, position=position, value=entry.value, timestamp=entry.timestamp
                )
            )
    session.execute(
        insert(earn_premium).values(
            account=account,
            is_premium=record.premium.is_premium,
            amount_paid=str(record.premium.amount_paid),
            expires_at=record.premium.expires_at,
        )
    )

    edge = record.referral
    position = None
    if edge.referrer is not None:
        referrer_record = state.accounts.get(edge.referrer)
        if referrer_record is not None and account in referrer_record.referral.referrals:
            position = referrer_record.referral.referrals.index(account)
    session.execute(
        insert(earn_referrals).values(
            account=account,
            referrer=edge.referrer,
            earned_bonus=str(edge.earned_bonus),
            referred_count=edge.referred_count,
            referred_position=position,
        )
    )

    for position, item in enumerate(record.stakes):
        session.execute(
            insert(earn_stakes).values(
                account=account,
                stake_id=item.stake_id,
                position=position,
                amount=str(item.amount),
                start_time=item.start_time,
                lock_duration=item.lock_duration,
                last_claimed=item.last_claimed,
                lock_months=item.lock_months,
            )
        )
