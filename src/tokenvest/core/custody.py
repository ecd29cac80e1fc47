"""
Escrow custody for vesting streams.

The vesting engine only needs three things from the asset ledger that backs
its streams: move funds, report balances, and make sure a recipient can hold
the asset before its first transfer. ``Custody`` states that contract;
``LedgerCustody`` is an in-memory single-asset balance ledger implementing it.

Security considerations:
- Balance underflow is rejected before any balance changes
- Transfers to accounts that never opted in to the asset are rejected
- Amounts must be positive integers within 256 bits
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Protocol, Set, runtime_checkable

from .exceptions import (
    CustodyError,
    InsufficientBalanceError,
    InvalidParametersError,
    RecipientNotProvisionedError,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Custody(Protocol):
    """Balance ledger consumed by the stream registry."""

    def transfer(self, source: str, destination: str, amount: int) -> None:
        """Move ``amount`` or raise InsufficientBalanceError."""
        ...

    def balance(self, account: str) -> int:
        ...

    def ensure_recipient_can_receive(self, identity: str, asset: str) -> None:
        """Idempotently provision ``identity`` to hold ``asset``."""
        ...


@dataclass
class TransferEvent:
    """Represents a custody balance movement."""

    event_type: str  # "Transfer", "Mint" or "OptIn"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class LedgerCustody:
    """
    In-memory balance ledger for a single fungible asset.

    Accounts must be provisioned (opted in) before they can receive a
    transfer; ``mint`` provisions its recipient implicitly.
    """

    asset: str = "TOKEN"
    total_supply: int = 0

    balances: Dict[str, int] = field(default_factory=dict)
    provisioned: Set[str] = field(default_factory=set)
    events: List[TransferEvent] = field(default_factory=list)

    UINT256_MAX: ClassVar[int] = 2**256 - 1

    # ==================== View Functions ====================

    def balance(self, account: str) -> int:
        """
        Get the balance of an account.

        Args:
            account: Address to check

        Returns:
            Current balance (0 for unknown accounts)
        """
        return self.balances.get(self._normalize(account), 0)

    def is_provisioned(self, account: str) -> bool:
        return self._normalize(account) in self.provisioned

    # ==================== State-Changing Functions ====================

    def ensure_recipient_can_receive(self, identity: str, asset: str) -> None:
        """
        Opt ``identity`` in to the asset. Calling it again is a no-op.

        Raises:
            CustodyError: If ``asset`` is not the asset held by this ledger
        """
        if asset != self.asset:
            raise CustodyError(
                f"Custody holds {self.asset}, cannot provision {asset}",
                details={"asset": asset, "ledger_asset": self.asset},
            )
        account = self._normalize(identity)
        if account in self.provisioned:
            return
        self.provisioned.add(account)
        self.balances.setdefault(account, 0)
        self.events.append(TransferEvent("OptIn", account, account, 0))
        logger.debug(
            "Custody opt-in",
            extra={"event": "custody.opt_in", "asset": self.asset, "account": account[:10]},
        )

    def mint(self, account: str, amount: int) -> None:
        """
        Create new units and credit them to ``account``.

        Raises:
            InvalidParametersError: If amount is not a positive integer
        """
        self._validate_amount(amount)
        account_norm = self._normalize(account)
        if self.total_supply + amount > self.UINT256_MAX:
            raise CustodyError("Mint would exceed uint256 total supply")

        self.ensure_recipient_can_receive(account_norm, self.asset)
        self.balances[account_norm] = self.balances.get(account_norm, 0) + amount
        self.total_supply += amount
        self.events.append(TransferEvent("Mint", "", account_norm, amount))
        logger.info(
            "Custody mint",
            extra={
                "event": "custody.mint",
                "asset": self.asset,
                "to": account_norm[:10],
                "amount": amount,
            },
        )

    def transfer(self, source: str, destination: str, amount: int) -> None:
        """
        Transfer ``amount`` from ``source`` to ``destination``.

        Raises:
            InvalidParametersError: If amount is not a positive integer
            RecipientNotProvisionedError: If destination never opted in
            InsufficientBalanceError: If source balance is too low
        """
        self._validate_amount(amount)
        source_norm = self._normalize(source)
        destination_norm = self._normalize(destination)

        if destination_norm not in self.provisioned:
            raise RecipientNotProvisionedError(
                f"Account {destination_norm[:10]} cannot receive {self.asset}",
                details={"account": destination_norm, "asset": self.asset},
            )

        source_balance = self.balances.get(source_norm, 0)
        if source_balance < amount:
            raise InsufficientBalanceError(
                f"Transfer amount exceeds balance ({amount} > {source_balance})",
                details={"account": source_norm, "balance": source_balance, "amount": amount},
            )

        self.balances[source_norm] = source_balance - amount
        self.balances[destination_norm] = self.balances.get(destination_norm, 0) + amount
        self.events.append(TransferEvent("Transfer", source_norm, destination_norm, amount))

        logger.debug(
            "Custody transfer",
            extra={
                "event": "custody.transfer",
                "asset": self.asset,
                "from": source_norm[:10],
                "to": destination_norm[:10],
                "amount": amount,
            },
        )

    # ==================== Internal Functions ====================

    @staticmethod
    def _normalize(address: str) -> str:
        if not isinstance(address, str) or not address.strip():
            raise InvalidParametersError("Custody account cannot be empty")
        return address.strip().lower()

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidParametersError("Amount must be an integer")
        if amount <= 0:
            raise InvalidParametersError("Amount must be positive")
        if amount > self.UINT256_MAX:
            raise InvalidParametersError("Amount exceeds uint256")

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize ledger state to dictionary."""
        return {
            "asset": self.asset,
            "total_supply": self.total_supply,
            "balances": dict(self.balances),
            "provisioned": sorted(self.provisioned),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerCustody":
        """Deserialize ledger state from dictionary."""
        return cls(
            asset=data.get("asset", "TOKEN"),
            total_supply=int(data.get("total_supply", 0)),
            balances={k: int(v) for k, v in data.get("balances", {}).items()},
            provisioned=set(data.get("provisioned", [])),
        )
