"""PnL distributor: splits each trade across the investors who own the pool at trade time."""

from dataclasses import replace
from decimal import Decimal
from typing import List, Tuple

from .ledger import ownership
from .models import ZERO, LedgerState, TradeAllocation, TradeEvent


def allocate(investor_id: str, share: Decimal, event: TradeEvent, profit_share_rate: Decimal) -> TradeAllocation:
    """Compute one investor's slice of a trade.

    Fees are shared by ownership whatever the trade direction. The manager
    profit share is only taken from a positive clean result.
    """

    gross = event.pnl * share
    fee = event.fee * share
    clean = gross - fee
    manager_share = clean * profit_share_rate if clean > 0 else ZERO
    return TradeAllocation(
        investor_id=investor_id,
        ownership=share,
        gross_pnl=gross,
        fee=fee,
        clean_pnl=clean,
        manager_share=manager_share,
        net_pnl=clean - manager_share,
    )


def distribute_trade(
    state: LedgerState, event: TradeEvent, profit_share_rate: Decimal
) -> Tuple[LedgerState, Tuple[TradeAllocation, ...]]:
    """Apply a trade to every current owner and return the new state with its allocations.

    A trade against an empty pool allocates nothing.
    """

    shares = ownership(state)
    allocations: List[TradeAllocation] = []
    positions = []
    for position in state.positions:
        share = shares[position.investor_id]
        if share == 0:
            positions.append(position)
            continue
        allocation = allocate(position.investor_id, share, event, profit_share_rate)
        allocations.append(allocation)
        positions.append(
            replace(
                position,
                gross_pnl=position.gross_pnl + allocation.gross_pnl,
                fees_paid=position.fees_paid + allocation.fee,
                manager_share_paid=position.manager_share_paid + allocation.manager_share,
                net_pnl=position.net_pnl + allocation.net_pnl,
            )
        )

    if not allocations:
        return state, ()
    return LedgerState(positions=tuple(positions)), tuple(allocations)
