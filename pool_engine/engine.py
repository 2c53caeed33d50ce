"""Pure replay engine for time-based pool balances."""

import logging
from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import EngineSettings, get_settings
from .diagnostics import Diagnostic, DiagnosticCode
from .distributor import distribute_trade
from .ledger import apply_deposit, apply_withdrawal, ownership
from .models import (
    HUNDRED,
    ZERO,
    DepositEvent,
    InvestorBalance,
    InvestorRecord,
    LedgerState,
    PoolBalances,
    PoolEvent,
    PoolSettings,
    ReplayStep,
    TradeAllocation,
    TradeEvent,
    TradeRecord,
    WithdrawalEvent,
    WithdrawalRecord,
    decimal_str,
)
from .normalizer import normalize_events

logger = logging.getLogger(__name__)


def engine_context(precision: int) -> Context:
    """Decimal context used for every replay, independent of the caller's thread context."""

    return Context(prec=precision, rounding=ROUND_HALF_EVEN)


def replay(
    events: Sequence[PoolEvent], profit_share_rate: Decimal
) -> Tuple[Tuple[ReplayStep, ...], Tuple[Diagnostic, ...]]:
    """Run one forward pass over ordered events, snapshotting the ledger after each."""

    state = LedgerState()
    steps: List[ReplayStep] = []
    diagnostics: List[Diagnostic] = []

    for sequence, event in enumerate(events, start=1):
        allocations: Tuple[TradeAllocation, ...] = ()
        if isinstance(event, DepositEvent):
            state = apply_deposit(state, event)
        elif isinstance(event, TradeEvent):
            state, allocations = distribute_trade(state, event, profit_share_rate)
        elif isinstance(event, WithdrawalEvent):
            overdraw = _check_withdrawal(state, event)
            if overdraw is not None:
                diagnostics.append(overdraw)
            state = apply_withdrawal(state, event)
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        steps.append(
            ReplayStep(
                sequence=sequence,
                event=event,
                state=state,
                total_capital=state.total_capital,
                pool_value=state.pool_value,
                allocations=allocations,
            )
        )

    return tuple(steps), tuple(diagnostics)


def calculate_time_based_balances(
    settings: PoolSettings,
    investors: Iterable[InvestorRecord] = (),
    trades: Iterable[TradeRecord] = (),
    withdrawals: Iterable[WithdrawalRecord] = (),
    engine_settings: Optional[EngineSettings] = None,
) -> PoolBalances:
    """Replay a pool's history and return every investor's current position.

    Bad records never abort the computation; they are excluded and reported
    in ``diagnostics`` next to the best-effort result.
    """

    config = engine_settings or get_settings()

    with localcontext(engine_context(config.precision)):
        normalized = normalize_events(settings, investors, trades, withdrawals)
        steps, replay_diagnostics = replay(normalized.events, settings.profit_share_rate)
        final_state = steps[-1].state if steps else LedgerState()
        balances = _aggregate(final_state)
        total_pool_value = sum((balance.current_balance for balance in balances), ZERO)
        total_capital = final_state.total_capital
        conservation = _check_conservation(
            steps, total_pool_value, config.conservation_tolerance
        )

    diagnostics = normalized.diagnostics + replay_diagnostics + conservation
    for diagnostic in diagnostics:
        logger.warning(
            "Pool %s %s %s: %s",
            settings.pool_type,
            diagnostic.code.value,
            diagnostic.record_ref,
            diagnostic.message,
        )
    logger.debug(
        "Replayed %d events for pool %s; %d investors, value %s",
        len(steps),
        settings.pool_type,
        len(balances),
        decimal_str(total_pool_value),
    )

    return PoolBalances(
        pool_type=settings.pool_type,
        investors=balances,
        total_pool_value=total_pool_value,
        total_capital=total_capital,
        diagnostics=diagnostics,
        steps=steps,
    )


def _aggregate(state: LedgerState) -> Tuple[InvestorBalance, ...]:
    shares = ownership(state)
    return tuple(
        InvestorBalance(
            investor_id=position.investor_id,
            wallet_address=position.wallet_address,
            ownership_pct=shares[position.investor_id] * HUNDRED,
            deposits=position.deposits,
            withdrawals=position.withdrawals,
            gross_pnl=position.gross_pnl,
            fees_paid=position.fees_paid,
            manager_share_paid=position.manager_share_paid,
            net_pnl=position.net_pnl,
            current_balance=position.deposits - position.withdrawals + position.net_pnl,
        )
        for position in state.positions
    )


def _check_withdrawal(state: LedgerState, event: WithdrawalEvent) -> Optional[Diagnostic]:
    position = state.get(event.investor_id)
    available = position.balance if position is not None else ZERO
    if event.amount <= available:
        return None
    return Diagnostic(
        code=DiagnosticCode.WITHDRAWAL_EXCEEDS_BALANCE,
        message=(
            f"Paid withdrawal of {decimal_str(event.amount)} exceeds investor "
            f"{event.investor_id} balance of {decimal_str(available)}; applied as recorded."
        ),
        record_type="withdrawal",
        record_ref=event.withdrawal_id or event.investor_id,
    )


def _check_conservation(
    steps: Sequence[ReplayStep], total_pool_value: Decimal, tolerance: Decimal
) -> Tuple[Diagnostic, ...]:
    """Rebuild the pool value from raw event amounts and compare with the summed balances.

    Trade totals come from the event itself, so an allocation that does not
    cover the whole trade shows up here as well.
    """

    expected = ZERO
    diagnostics: List[Diagnostic] = []
    for step in steps:
        event = step.event
        if isinstance(event, DepositEvent):
            expected += event.amount
        elif isinstance(event, WithdrawalEvent):
            expected -= event.amount
        elif step.allocations:
            expected += event.pnl - event.fee
            expected -= sum((allocation.manager_share for allocation in step.allocations), ZERO)
            owned = sum((allocation.ownership for allocation in step.allocations), ZERO)
            if abs(owned - 1) > tolerance:
                diagnostics.append(
                    Diagnostic(
                        code=DiagnosticCode.CONSERVATION_MISMATCH,
                        message=f"Trade at step {step.sequence} allocated {decimal_str(owned)} of the pool.",
                        record_type="trade",
                        record_ref=event.trade_id,
                    )
                )

    if abs(expected - total_pool_value) > tolerance:
        diagnostics.append(
            Diagnostic(
                code=DiagnosticCode.CONSERVATION_MISMATCH,
                message=(
                    f"Pool value {decimal_str(total_pool_value)} differs from deposits, "
                    f"withdrawals and trade results {decimal_str(expected)}."
                ),
                record_type="pool",
            )
        )
    return tuple(diagnostics)
