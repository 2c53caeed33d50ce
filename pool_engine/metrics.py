"""Headline pool metrics for landing and pool-performance pages."""

from decimal import Decimal, localcontext
from typing import Iterable, Optional, Tuple

from .config import EngineSettings, get_settings
from .engine import engine_context
from .models import (
    ZERO,
    DepositEvent,
    EventKind,
    InvestorRecord,
    PoolEvent,
    PoolMetrics,
    PoolSettings,
    TradeEvent,
    TradeRecord,
    WithdrawalEvent,
    WithdrawalRecord,
)
from .normalizer import normalize_events, split_by_kind


def calculate_pool_metrics(
    settings: PoolSettings,
    investors: Iterable[InvestorRecord] = (),
    trades: Iterable[TradeRecord] = (),
    withdrawals: Iterable[WithdrawalRecord] = (),
    engine_settings: Optional[EngineSettings] = None,
) -> PoolMetrics:
    """Summarize a pool without replaying ownership.

    The profit share here is taken once from the pool's aggregate result, so
    it can differ from the sum of per-investor shares in the full replay.
    """

    config = engine_settings or get_settings()

    with localcontext(engine_context(config.precision)):
        normalized = normalize_events(settings, investors, trades, withdrawals)
        grouped = split_by_kind(normalized.events)
        trade_events = _of_type(grouped[EventKind.TRADE], TradeEvent)

        gross_pnl = _total(event.pnl for event in trade_events)
        trading_fees = _total(event.fee for event in trade_events)
        clean_pnl = gross_pnl - trading_fees
        profit_share = clean_pnl * settings.profit_share_rate if clean_pnl > 0 else ZERO
        net_pnl = clean_pnl - profit_share

        total_deposits = _total(
            event.amount for event in _of_type(grouped[EventKind.DEPOSIT], DepositEvent)
        )
        total_withdrawals = _total(
            event.amount for event in _of_type(grouped[EventKind.WITHDRAWAL], WithdrawalEvent)
        )

    return PoolMetrics(
        pool_type=settings.pool_type,
        gross_pnl=gross_pnl,
        trading_fees=trading_fees,
        profit_share=profit_share,
        net_pnl=net_pnl,
        total_deposits=total_deposits,
        total_withdrawals=total_withdrawals,
        total_balance=total_deposits - total_withdrawals + net_pnl,
        trade_count=len(trade_events),
        winning_trades=sum(1 for event in trade_events if _is_win(event)),
        diagnostics=normalized.diagnostics,
    )


def _is_win(event: TradeEvent) -> bool:
    if event.result:
        return event.result.strip().lower() == "win"
    return event.pnl > 0


def _total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def _of_type(events: Tuple[PoolEvent, ...], event_type: type) -> Tuple:
    return tuple(event for event in events if isinstance(event, event_type))
