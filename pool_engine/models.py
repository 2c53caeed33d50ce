"""Domain schemas for the pool ownership and PnL distribution engine."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import ClassVar, Dict, Mapping, Optional, Tuple, Union

from .diagnostics import Diagnostic

ZERO = Decimal("0")
HUNDRED = Decimal("100")

RawAmount = Union[Decimal, int, float, str, None]
RawTimestamp = Union[datetime, int, float, str, None]

_SCHEME_PREFIX = re.compile(r"^[a-z-]+://", re.IGNORECASE)


def to_decimal(value: object) -> Decimal:
    """Convert a backend amount to Decimal, raising ValueError when it is not a finite number."""

    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def decimal_str(value: Decimal) -> str:
    return format(value, "f")


def clean_wallet_address(address: Optional[str]) -> str:
    """Strip browser-extension scheme prefixes and lowercase a wallet address."""

    if not address:
        return ""
    return _SCHEME_PREFIX.sub("", address.strip()).lower()


def _first_present(data: Mapping[str, object], *keys: str) -> object:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _optional_str(value: object) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def _deposit_transactions(value: object) -> Tuple["DepositTransaction", ...]:
    if value in (None, ""):
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(DepositTransaction.from_dict(item) for item in value)
    return (DepositTransaction.from_dict(value),)


# Input records ---------------------------------------------------------------


@dataclass(frozen=True)
class DepositTransaction:
    """One incremental deposit appended to an investor record."""

    amount: RawAmount
    timestamp: RawTimestamp
    tx_ref: Optional[str] = None

    @staticmethod
    def from_dict(data: object) -> "DepositTransaction":
        if not isinstance(data, Mapping):
            # Not a transaction object: keep a scalar so it is reported, never applied.
            amount = data if isinstance(data, (int, float, str)) else None
            return DepositTransaction(amount=amount, timestamp=None)
        return DepositTransaction(
            amount=data.get("amount"),
            timestamp=_first_present(data, "timestamp", "date", "created_date"),
            tx_ref=_optional_str(_first_present(data, "tx_ref", "tx_hash", "reference")),
        )


@dataclass(frozen=True)
class InvestorRecord:
    """A capital contributor to one pool, as stored by the backend."""

    id: str
    wallet_address: str
    pool_type: Optional[str]
    invested_amount: RawAmount
    created_date: RawTimestamp
    deposit_transactions: Tuple[DepositTransaction, ...] = ()

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "InvestorRecord":
        return InvestorRecord(
            id=_optional_str(data.get("id")) or "",
            wallet_address=str(data.get("wallet_address") or ""),
            pool_type=_optional_str(data.get("pool_type")),
            invested_amount=data.get("invested_amount"),
            created_date=_first_present(data, "created_date", "created_at"),
            deposit_transactions=_deposit_transactions(data.get("deposit_transactions")),
        )


@dataclass(frozen=True)
class TradeRecord:
    """A completed trade applied to the whole pool. `date` is when it executed, not when the row was entered."""

    pool_type: Optional[str]
    date: RawTimestamp
    pnl: RawAmount
    fee: RawAmount = None
    result: Optional[str] = None
    id: Optional[str] = None

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "TradeRecord":
        return TradeRecord(
            pool_type=_optional_str(data.get("pool_type")),
            date=_first_present(data, "date", "created_date", "created_at"),
            pnl=data.get("pnl"),
            fee=data.get("fee"),
            result=_optional_str(data.get("result")),
            id=_optional_str(data.get("id")),
        )


@dataclass(frozen=True)
class WithdrawalRecord:
    """Capital removed from the pool. Only paid withdrawals reach the ledger."""

    pool_type: Optional[str]
    amount: RawAmount
    created_date: RawTimestamp
    status: str
    paid_date: RawTimestamp = None
    investor_id: Optional[str] = None
    wallet_address: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return (self.status or "").strip().lower() == "paid"

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "WithdrawalRecord":
        return WithdrawalRecord(
            pool_type=_optional_str(data.get("pool_type")),
            amount=data.get("amount"),
            created_date=_first_present(data, "created_date", "created_at"),
            status=str(data.get("status") or ""),
            paid_date=_first_present(data, "paid_date"),
            investor_id=_optional_str(data.get("investor_id")),
            wallet_address=_optional_str(data.get("wallet_address")),
            id=_optional_str(data.get("id")),
        )


@dataclass(frozen=True)
class PoolSettings:
    """Per pool-type configuration consumed by the engine."""

    pool_type: str
    profit_share_rate: Decimal
    lock_in_days: Optional[int] = None

    def __post_init__(self) -> None:
        rate = to_decimal(self.profit_share_rate)
        if rate < 0 or rate > 1:
            raise ValueError("profit_share_rate must be between 0 and 1.")
        object.__setattr__(self, "profit_share_rate", rate)

    @staticmethod
    def from_dict(data: Mapping[str, object], default_rate: Decimal) -> "PoolSettings":
        rate = data.get("profit_share_rate")
        lock_in = data.get("lock_in_days")
        return PoolSettings(
            pool_type=str(data.get("pool_type") or ""),
            profit_share_rate=default_rate if rate in (None, "") else rate,
            lock_in_days=int(lock_in) if lock_in not in (None, "") else None,
        )


# Normalized events -----------------------------------------------------------


class EventKind(Enum):
    DEPOSIT = "deposit"
    TRADE = "trade"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class DepositEvent:
    timestamp: datetime
    position: Tuple[int, int]
    investor_id: str
    wallet_address: str
    amount: Decimal
    tx_ref: Optional[str] = None

    kind: ClassVar[EventKind] = EventKind.DEPOSIT

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "investor_id": self.investor_id,
            "amount": decimal_str(self.amount),
            "tx_ref": self.tx_ref,
        }


@dataclass(frozen=True)
class TradeEvent:
    timestamp: datetime
    position: Tuple[int, int]
    pnl: Decimal
    fee: Decimal
    result: Optional[str] = None
    trade_id: Optional[str] = None

    kind: ClassVar[EventKind] = EventKind.TRADE

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "trade_id": self.trade_id,
            "pnl": decimal_str(self.pnl),
            "fee": decimal_str(self.fee),
            "result": self.result,
        }


@dataclass(frozen=True)
class WithdrawalEvent:
    timestamp: datetime
    position: Tuple[int, int]
    investor_id: str
    wallet_address: str
    amount: Decimal
    withdrawal_id: Optional[str] = None

    kind: ClassVar[EventKind] = EventKind.WITHDRAWAL

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "investor_id": self.investor_id,
            "withdrawal_id": self.withdrawal_id,
            "amount": decimal_str(self.amount),
        }


PoolEvent = Union[DepositEvent, TradeEvent, WithdrawalEvent]


@dataclass(frozen=True)
class NormalizedEvents:
    events: Tuple[PoolEvent, ...]
    diagnostics: Tuple[Diagnostic, ...]


# Ledger state ----------------------------------------------------------------


@dataclass(frozen=True)
class InvestorPosition:
    """Running accumulators for one investor during a replay."""

    investor_id: str
    wallet_address: str
    deposits: Decimal = ZERO
    withdrawals: Decimal = ZERO
    gross_pnl: Decimal = ZERO
    fees_paid: Decimal = ZERO
    manager_share_paid: Decimal = ZERO
    net_pnl: Decimal = ZERO

    @property
    def capital(self) -> Decimal:
        return self.deposits - self.withdrawals

    @property
    def balance(self) -> Decimal:
        return self.capital + self.net_pnl


@dataclass(frozen=True)
class LedgerState:
    """Immutable snapshot of every investor position, in ledger insertion order."""

    positions: Tuple[InvestorPosition, ...] = ()

    def get(self, investor_id: str) -> Optional[InvestorPosition]:
        for position in self.positions:
            if position.investor_id == investor_id:
                return position
        return None

    @property
    def total_capital(self) -> Decimal:
        return sum((position.capital for position in self.positions), ZERO)

    @property
    def total_net_pnl(self) -> Decimal:
        return sum((position.net_pnl for position in self.positions), ZERO)

    @property
    def pool_value(self) -> Decimal:
        return sum((position.balance for position in self.positions), ZERO)


@dataclass(frozen=True)
class TradeAllocation:
    """One investor's share of a single trade."""

    investor_id: str
    ownership: Decimal
    gross_pnl: Decimal
    fee: Decimal
    clean_pnl: Decimal
    manager_share: Decimal
    net_pnl: Decimal

    def to_dict(self) -> Dict[str, object]:
        return {
            "investor_id": self.investor_id,
            "ownership_pct": decimal_str(self.ownership * HUNDRED),
            "gross_pnl": decimal_str(self.gross_pnl),
            "fee": decimal_str(self.fee),
            "clean_pnl": decimal_str(self.clean_pnl),
            "manager_share": decimal_str(self.manager_share),
            "net_pnl": decimal_str(self.net_pnl),
        }


@dataclass(frozen=True)
class ReplayStep:
    """Ledger snapshot taken right after one event was applied."""

    sequence: int
    event: PoolEvent
    state: LedgerState
    total_capital: Decimal
    pool_value: Decimal
    allocations: Tuple[TradeAllocation, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "sequence": self.sequence,
            "event": self.event.to_dict(),
            "total_capital": decimal_str(self.total_capital),
            "pool_value": decimal_str(self.pool_value),
            "allocations": [allocation.to_dict() for allocation in self.allocations],
        }


# Engine output ---------------------------------------------------------------


@dataclass(frozen=True)
class InvestorBalance:
    investor_id: str
    wallet_address: str
    ownership_pct: Decimal
    deposits: Decimal
    withdrawals: Decimal
    gross_pnl: Decimal
    fees_paid: Decimal
    manager_share_paid: Decimal
    net_pnl: Decimal
    current_balance: Decimal

    def to_dict(self) -> Dict[str, object]:
        return {
            "investor_id": self.investor_id,
            "wallet_address": self.wallet_address,
            "ownership_pct": decimal_str(self.ownership_pct),
            "deposits": decimal_str(self.deposits),
            "withdrawals": decimal_str(self.withdrawals),
            "gross_pnl": decimal_str(self.gross_pnl),
            "fees_paid": decimal_str(self.fees_paid),
            "manager_share_paid": decimal_str(self.manager_share_paid),
            "net_pnl": decimal_str(self.net_pnl),
            "current_balance": decimal_str(self.current_balance),
        }


@dataclass(frozen=True)
class PoolBalances:
    """Result of replaying one pool's full history."""

    pool_type: str
    investors: Tuple[InvestorBalance, ...]
    total_pool_value: Decimal
    total_capital: Decimal
    diagnostics: Tuple[Diagnostic, ...] = ()
    steps: Tuple[ReplayStep, ...] = field(default=(), repr=False)

    @property
    def has_diagnostics(self) -> bool:
        return bool(self.diagnostics)

    def balance_for(self, investor_id: str) -> Optional[InvestorBalance]:
        for balance in self.investors:
            if balance.investor_id == investor_id:
                return balance
        return None

    def balance_for_wallet(self, wallet_address: str) -> Optional[InvestorBalance]:
        wallet = clean_wallet_address(wallet_address)
        for balance in self.investors:
            if balance.wallet_address == wallet:
                return balance
        return None

    def to_dict(self, include_steps: bool = False) -> Dict[str, object]:
        result: Dict[str, object] = {
            "pool_type": self.pool_type,
            "investors": [balance.to_dict() for balance in self.investors],
            "total_pool_value": decimal_str(self.total_pool_value),
            "total_capital": decimal_str(self.total_capital),
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }
        if include_steps:
            result["steps"] = [step.to_dict() for step in self.steps]
        return result


@dataclass(frozen=True)
class PoolMetrics:
    """Headline pool figures shown on landing and performance pages."""

    pool_type: str
    gross_pnl: Decimal
    trading_fees: Decimal
    profit_share: Decimal
    net_pnl: Decimal
    total_deposits: Decimal
    total_withdrawals: Decimal
    total_balance: Decimal
    trade_count: int
    winning_trades: int
    diagnostics: Tuple[Diagnostic, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "pool_type": self.pool_type,
            "gross_pnl": decimal_str(self.gross_pnl),
            "trading_fees": decimal_str(self.trading_fees),
            "profit_share": decimal_str(self.profit_share),
            "net_pnl": decimal_str(self.net_pnl),
            "total_deposits": decimal_str(self.total_deposits),
            "total_withdrawals": decimal_str(self.total_withdrawals),
            "total_balance": decimal_str(self.total_balance),
            "trade_count": self.trade_count,
            "winning_trades": self.winning_trades,
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }
