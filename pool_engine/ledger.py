"""Ownership ledger: capital contributions and ownership fractions during a replay."""

from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict

from .models import ZERO, DepositEvent, InvestorPosition, LedgerState, WithdrawalEvent


def apply_deposit(state: LedgerState, event: DepositEvent) -> LedgerState:
    """Return a new state with the deposit added to the investor's capital."""

    return _update(
        state,
        event.investor_id,
        event.wallet_address,
        lambda position: replace(position, deposits=position.deposits + event.amount),
    )


def apply_withdrawal(state: LedgerState, event: WithdrawalEvent) -> LedgerState:
    """Return a new state with the withdrawal removed from the investor's capital.

    Accumulated PnL is left untouched; only the capital base used for future
    ownership changes.
    """

    return _update(
        state,
        event.investor_id,
        event.wallet_address,
        lambda position: replace(position, withdrawals=position.withdrawals + event.amount),
    )


def ownership_basis(position: InvestorPosition) -> Decimal:
    # Capital goes negative once an investor withdraws realized profit; such an
    # investor holds no share of future trades.
    return max(position.capital, ZERO)


def ownership(state: LedgerState) -> Dict[str, Decimal]:
    """Ownership fraction per investor, in ledger insertion order.

    Every investor maps to 0 when the pool holds no capital.
    """

    total = sum((ownership_basis(position) for position in state.positions), ZERO)
    if total <= 0:
        return {position.investor_id: ZERO for position in state.positions}
    return {
        position.investor_id: ownership_basis(position) / total
        for position in state.positions
    }


def _update(
    state: LedgerState,
    investor_id: str,
    wallet_address: str,
    change: Callable[[InvestorPosition], InvestorPosition],
) -> LedgerState:
    positions = list(state.positions)
    for index, position in enumerate(positions):
        if position.investor_id == investor_id:
            positions[index] = change(position)
            return LedgerState(positions=tuple(positions))

    positions.append(change(InvestorPosition(investor_id=investor_id, wallet_address=wallet_address)))
    return LedgerState(positions=tuple(positions))
