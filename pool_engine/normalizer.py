"""Merge one pool's deposits, trades and withdrawals into an ordered event stream."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .diagnostics import Diagnostic, DiagnosticCode
from .models import (
    ZERO,
    DepositEvent,
    EventKind,
    InvestorRecord,
    NormalizedEvents,
    PoolEvent,
    PoolSettings,
    TradeEvent,
    TradeRecord,
    WithdrawalEvent,
    WithdrawalRecord,
    clean_wallet_address,
    decimal_str,
    to_decimal,
)

logger = logging.getLogger(__name__)

# Same-instant events: deposits count toward ownership before a trade at that
# instant, withdrawals only apply once the trade has been allocated.
_KIND_RANK = {
    EventKind.DEPOSIT: 0,
    EventKind.TRADE: 1,
    EventKind.WITHDRAWAL: 2,
}


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse a backend timestamp into an aware UTC datetime, or None when unusable.

    Accepts datetimes, ISO-8601 strings and numbers (epoch milliseconds).
    Naive values are taken as UTC.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def event_sort_key(event: PoolEvent) -> Tuple[datetime, int, Tuple[int, int]]:
    return (event.timestamp, _KIND_RANK[event.kind], event.position)


def normalize_events(
    settings: PoolSettings,
    investors: Iterable[InvestorRecord] = (),
    trades: Iterable[TradeRecord] = (),
    withdrawals: Iterable[WithdrawalRecord] = (),
) -> NormalizedEvents:
    """Validate records for one pool and return them as a chronologically ordered stream."""

    normalizer = _Normalizer(settings.pool_type)
    for index, investor in enumerate(investors):
        normalizer.add_investor(index, investor)
    for index, trade in enumerate(trades):
        normalizer.add_trade(index, trade)
    for index, withdrawal in enumerate(withdrawals):
        normalizer.add_withdrawal(index, withdrawal)

    events = tuple(sorted(normalizer.events, key=event_sort_key))
    logger.debug(
        "Normalized %d events for pool %s (%d diagnostics)",
        len(events),
        settings.pool_type,
        len(normalizer.diagnostics),
    )
    return NormalizedEvents(events=events, diagnostics=tuple(normalizer.diagnostics))


class _Normalizer:
    def __init__(self, pool_type: str) -> None:
        self._pool_type = _normalize_pool_type(pool_type)
        self._wallets: Dict[str, str] = {}
        self._by_wallet: Dict[str, List[str]] = {}
        self.events: List[PoolEvent] = []
        self.diagnostics: List[Diagnostic] = []

    def add_investor(self, index: int, investor: InvestorRecord) -> None:
        ref = investor.id or f"investors[{index}]"
        if not self._same_pool(investor.pool_type, "investor", ref):
            return
        if not investor.id:
            self._report(
                DiagnosticCode.MISSING_INVESTOR_ID,
                "Investor record has no id.",
                "investor",
                ref,
            )
            return
        if investor.id in self._wallets:
            self._report(
                DiagnosticCode.DUPLICATE_INVESTOR,
                f"Investor {investor.id} appears more than once; later record ignored.",
                "investor",
                ref,
            )
            return

        wallet = clean_wallet_address(investor.wallet_address)
        self._wallets[investor.id] = wallet
        if wallet:
            self._by_wallet.setdefault(wallet, []).append(investor.id)

        if not investor.deposit_transactions:
            self._add_deposit(
                investor, wallet, (index, 0), investor.invested_amount, investor.created_date, None, ref
            )
            return

        recorded_total = ZERO
        for tx_index, transaction in enumerate(investor.deposit_transactions):
            tx_ref = transaction.tx_ref or f"{ref}.deposit_transactions[{tx_index}]"
            amount = self._add_deposit(
                investor,
                wallet,
                (index, tx_index),
                transaction.amount,
                transaction.timestamp,
                transaction.tx_ref,
                tx_ref,
            )
            if amount is not None:
                recorded_total += amount

        invested = _parse_amount(investor.invested_amount)
        if invested is not None and invested != recorded_total:
            self._report(
                DiagnosticCode.DEPOSIT_TOTAL_MISMATCH,
                (
                    f"invested_amount {decimal_str(invested)} differs from deposit "
                    f"transactions total {decimal_str(recorded_total)}; transactions used."
                ),
                "investor",
                ref,
            )

    def add_trade(self, index: int, trade: TradeRecord) -> None:
        ref = trade.id or f"trades[{index}]"
        if not self._same_pool(trade.pool_type, "trade", ref):
            return
        timestamp = self._timestamp(trade.date, "trade", ref)
        pnl = self._amount(trade.pnl, "trade", ref, "pnl")
        fee = ZERO if trade.fee in (None, "") else self._amount(trade.fee, "trade", ref, "fee")
        if timestamp is None or pnl is None or fee is None:
            return
        if fee < 0:
            self._report(
                DiagnosticCode.NEGATIVE_FEE,
                f"Trade fee {decimal_str(fee)} is negative.",
                "trade",
                ref,
            )
            return
        self.events.append(
            TradeEvent(
                timestamp=timestamp,
                position=(index, 0),
                pnl=pnl,
                fee=fee,
                result=trade.result,
                trade_id=trade.id,
            )
        )

    def add_withdrawal(self, index: int, withdrawal: WithdrawalRecord) -> None:
        if not withdrawal.is_paid:
            return
        ref = withdrawal.id or f"withdrawals[{index}]"
        if not self._same_pool(withdrawal.pool_type, "withdrawal", ref):
            return
        timestamp = self._timestamp(
            withdrawal.paid_date if withdrawal.paid_date not in (None, "") else withdrawal.created_date,
            "withdrawal",
            ref,
        )
        amount = self._amount(withdrawal.amount, "withdrawal", ref, "amount")
        if timestamp is None or amount is None:
            return
        if amount < 0:
            self._report(
                DiagnosticCode.NEGATIVE_AMOUNT,
                f"Withdrawal amount {decimal_str(amount)} is negative.",
                "withdrawal",
                ref,
            )
            return
        investor_id = self._resolve_investor(withdrawal, ref)
        if investor_id is None:
            return
        self.events.append(
            WithdrawalEvent(
                timestamp=timestamp,
                position=(index, 0),
                investor_id=investor_id,
                wallet_address=self._wallets[investor_id],
                amount=amount,
                withdrawal_id=withdrawal.id,
            )
        )

    def _add_deposit(
        self,
        investor: InvestorRecord,
        wallet: str,
        position: Tuple[int, int],
        raw_amount: object,
        raw_timestamp: object,
        tx_ref: Optional[str],
        ref: str,
    ) -> Optional[Decimal]:
        timestamp = self._timestamp(raw_timestamp, "deposit", ref)
        amount = self._amount(raw_amount, "deposit", ref, "amount")
        if timestamp is None or amount is None:
            return None
        if amount < 0:
            self._report(
                DiagnosticCode.NEGATIVE_AMOUNT,
                f"Deposit amount {decimal_str(amount)} is negative.",
                "deposit",
                ref,
            )
            return None
        self.events.append(
            DepositEvent(
                timestamp=timestamp,
                position=position,
                investor_id=investor.id,
                wallet_address=wallet,
                amount=amount,
                tx_ref=tx_ref,
            )
        )
        return amount

    def _resolve_investor(self, withdrawal: WithdrawalRecord, ref: str) -> Optional[str]:
        if withdrawal.investor_id:
            if withdrawal.investor_id in self._wallets:
                return withdrawal.investor_id
            self._report(
                DiagnosticCode.ORPHANED_WITHDRAWAL,
                f"Withdrawal references unknown investor {withdrawal.investor_id}.",
                "withdrawal",
                ref,
            )
            return None

        wallet = clean_wallet_address(withdrawal.wallet_address)
        matches = self._by_wallet.get(wallet, []) if wallet else []
        if not matches:
            self._report(
                DiagnosticCode.ORPHANED_WITHDRAWAL,
                f"Withdrawal wallet {wallet or '<missing>'} matches no investor in this pool.",
                "withdrawal",
                ref,
            )
            return None
        if len(matches) > 1:
            self._report(
                DiagnosticCode.AMBIGUOUS_WITHDRAWAL,
                f"Withdrawal wallet {wallet} matches investors {', '.join(matches)}.",
                "withdrawal",
                ref,
            )
            return None
        return matches[0]

    def _same_pool(self, pool_type: Optional[str], record_type: str, ref: str) -> bool:
        # Records without a pool type are assumed to be pre-filtered by the caller.
        if not pool_type or _normalize_pool_type(pool_type) == self._pool_type:
            return True
        self._report(
            DiagnosticCode.POOL_TYPE_MISMATCH,
            f"Record belongs to pool {pool_type!r}, not {self._pool_type!r}.",
            record_type,
            ref,
        )
        return False

    def _timestamp(self, value: object, record_type: str, ref: str) -> Optional[datetime]:
        timestamp = parse_timestamp(value)
        if timestamp is None:
            self._report(
                DiagnosticCode.INVALID_TIMESTAMP,
                f"Missing or unparseable timestamp {value!r}.",
                record_type,
                ref,
            )
        return timestamp

    def _amount(self, value: object, record_type: str, ref: str, field_name: str) -> Optional[Decimal]:
        amount = _parse_amount(value)
        if amount is None:
            self._report(
                DiagnosticCode.INVALID_AMOUNT,
                f"Missing or non-numeric {field_name} {value!r}.",
                record_type,
                ref,
            )
        return amount

    def _report(self, code: DiagnosticCode, message: str, record_type: str, ref: str) -> None:
        self.diagnostics.append(
            Diagnostic(code=code, message=message, record_type=record_type, record_ref=ref)
        )


def _parse_amount(value: object) -> Optional[Decimal]:
    try:
        return to_decimal(value)
    except ValueError:
        return None


def _normalize_pool_type(pool_type: str) -> str:
    return (pool_type or "").strip().lower()


def split_by_kind(events: Sequence[PoolEvent]) -> Dict[EventKind, Tuple[PoolEvent, ...]]:
    grouped: Dict[EventKind, List[PoolEvent]] = {kind: [] for kind in EventKind}
    for event in events:
        grouped[event.kind].append(event)
    return {kind: tuple(items) for kind, items in grouped.items()}
