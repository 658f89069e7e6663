"""
MOVIN token collaborator.

The engine never owns balances; it talks to a token through the
TokenCollaborator protocol. InMemoryToken is the reference implementation:
- Append-only ledger of every movement
- Allowances granted to a spender (the engine's custody account)
- Optional supply cap and a pause switch
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, NamedTuple, Optional, Protocol, Tuple

from movin_earn.core.errors import (
    ContractPaused,
    InsufficientAllowance,
    InsufficientBalance,
    ValidationError,
    ZeroAmountNotAllowed,
)

logger = logging.getLogger(__name__)

EventType = Literal["MINT", "TRANSFER", "BURN", "APPROVE"]


class TokenBalance(NamedTuple):
    balance: int
    custody_allowance: int


class TokenCollaborator(Protocol):
    def mint(self, to: str, amount: int) -> None: ...

    def transfer(self, sender: str, to: str, amount: int) -> None: ...

    def transfer_from(self, owner: str, to: str, amount: int, *, spender: str) -> None: ...

    def approve(self, owner: str, spender: str, amount: int) -> None: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def burn(self, owner: str, amount: int) -> None: ...

    def balance_of(self, owner: str) -> int: ...

    def paused(self) -> bool: ...

    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...


class LedgerEntry:
    """Ledger entry model."""

    def __init__(
        self,
        event_type: EventType,
        amount: int,
        sender: Optional[str] = None,
        recipient: Optional[str] = None,
    ):
        self.event_type = event_type
        self.amount = amount
        self.sender = sender
        self.recipient = recipient

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "amount": str(self.amount),
            "from": self.sender,
            "to": self.recipient,
        }


class InMemoryToken:
    """Fungible token with ERC-20 style semantics, kept in process memory."""

    def __init__(self, supply_cap: Optional[int] = None):
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._ledger: List[LedgerEntry] = []
        self._total_supply = 0
        self._supply_cap = supply_cap
        self._paused = False

    @classmethod
    def from_records(
        cls,
        balances: Dict[str, int],
        allowances: Dict[Tuple[str, str], int],
        entries: List[LedgerEntry],
        paused: bool = False,
        supply_cap: Optional[int] = None,
    ) -> "InMemoryToken":
        """Rebuild a token from persisted balances, allowances and ledger."""
        token = cls(supply_cap=supply_cap)
        token._balances = {owner: amount for owner, amount in balances.items() if amount}
        token._allowances = {pair: amount for pair, amount in allowances.items() if amount}
        token._ledger = list(entries)
        token._total_supply = sum(token._balances.values())
        token._paused = paused
        return token

    # Reads -----------------------------------------------------------------
    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def paused(self) -> bool:
        return self._paused

    @property
    def ledger_length(self) -> int:
        return len(self._ledger)

    def entries_since(self, position: int) -> List[LedgerEntry]:
        return self._ledger[position:]

    def allowances_of(self, owner: str) -> Dict[str, int]:
        return {spender: amount for (o, spender), amount in self._allowances.items() if o == owner}

    def ledger(self, account: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent entries first, optionally only those touching `account`."""
        entries = [
            e for e in reversed(self._ledger)
            if account is None or account in (e.sender, e.recipient)
        ]
        return [e.to_dict() for e in entries[:limit]]

    # Admin -----------------------------------------------------------------
    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False

    # Movements -------------------------------------------------------------
    def mint(self, to: str, amount: int) -> None:
        self._require_active()
        self._require_positive(amount)
        if self._supply_cap is not None and self._total_supply + amount > self._supply_cap:
            raise ValidationError("Mint would exceed the supply cap", code="supply_cap_exceeded")
        self._balances[to] = self.balance_of(to) + amount
        self._total_supply += amount
        self._ledger.append(LedgerEntry("MINT", amount, recipient=to))
        logger.debug("token.mint", extra={"account": to, "amount": amount})

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Allowance cannot be negative")
        self._allowances[(owner, spender)] = amount
        self._ledger.append(LedgerEntry("APPROVE", amount, sender=owner, recipient=spender))

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self._require_active()
        self._require_positive(amount)
        self._move(sender, to, amount)

    def transfer_from(self, owner: str, to: str, amount: int, *, spender: str) -> None:
        self._require_active()
        self._require_positive(amount)
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientAllowance()
        if self.balance_of(owner) < amount:
            raise InsufficientBalance()
        self._allowances[(owner, spender)] = allowed - amount
        self._move(owner, to, amount)

    def burn(self, owner: str, amount: int) -> None:
        self._require_active()
        self._require_positive(amount)
        if self.balance_of(owner) < amount:
            raise InsufficientBalance()
        self._balances[owner] -= amount
        self._total_supply -= amount
        self._ledger.append(LedgerEntry("BURN", amount, sender=owner))
        logger.debug("token.burn", extra={"account": owner, "amount": amount})

    # Transaction support ---------------------------------------------------
    def snapshot(self) -> Any:
        return (
            dict(self._balances),
            dict(self._allowances),
            len(self._ledger),
            self._total_supply,
            self._paused,
        )

    def restore(self, snapshot: Any) -> None:
        balances, allowances, ledger_len, total_supply, paused = snapshot
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        del self._ledger[ledger_len:]
        self._total_supply = total_supply
        self._paused = paused

    # Internal helpers ------------------------------------------------------
    def _move(self, sender: str, to: str, amount: int) -> None:
        if self.balance_of(sender) < amount:
            raise InsufficientBalance()
        self._balances[sender] -= amount
        self._balances[to] = self.balance_of(to) + amount
        self._ledger.append(LedgerEntry("TRANSFER", amount, sender=sender, recipient=to))

    def _require_active(self) -> None:
        if self._paused:
            raise ContractPaused("Token is paused")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if amount <= 0:
            raise ZeroAmountNotAllowed()


