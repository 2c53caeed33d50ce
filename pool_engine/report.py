"""Plain-text rendering of engine results for operators."""

from decimal import ROUND_HALF_UP, Decimal
from typing import List

from .models import PoolBalances, PoolMetrics


def format_currency(value: Decimal, places: int = 2) -> str:
    """Format a Decimal as currency for console output."""

    quantum = Decimal(1).scaleb(-places)
    rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,.{places}f}"


def format_percent(value: Decimal, places: int = 2) -> str:
    return f"{value:.{places}f}%"


def render_balances(result: PoolBalances, places: int = 2) -> str:
    """Render a per-investor balance table followed by any diagnostics."""

    lines: List[str] = [
        f"Pool balances - {result.pool_type}",
        "=" * 60,
    ]
    for balance in result.investors:
        lines.append(f"Investor {balance.investor_id} ({balance.wallet_address or 'no wallet'})")
        lines.append(f"  Ownership: {format_percent(balance.ownership_pct, places)}")
        lines.append(f"  Deposits: {format_currency(balance.deposits, places)}")
        lines.append(f"  Withdrawals: {format_currency(balance.withdrawals, places)}")
        lines.append(f"  Gross PnL: {format_currency(balance.gross_pnl, places)}")
        lines.append(f"  Fees paid: {format_currency(balance.fees_paid, places)}")
        lines.append(f"  Profit share paid: {format_currency(balance.manager_share_paid, places)}")
        lines.append(f"  Net PnL: {format_currency(balance.net_pnl, places)}")
        lines.append(f"  Current balance: {format_currency(balance.current_balance, places)}")
    lines.append("")
    lines.append(f"Total pool value: {format_currency(result.total_pool_value, places)}")
    lines.append(f"Total capital: {format_currency(result.total_capital, places)}")

    if result.has_diagnostics:
        lines.append("")
        lines.append("Diagnostics (balances are best-effort):")
        for diagnostic in result.diagnostics:
            ref = f" [{diagnostic.record_ref}]" if diagnostic.record_ref else ""
            lines.append(f"- {diagnostic.code.value}{ref}: {diagnostic.message}")

    return "\n".join(lines)


def render_metrics(metrics: PoolMetrics, places: int = 2) -> str:
    lines = [
        f"Pool metrics - {metrics.pool_type}",
        "=" * 60,
        f"Gross PnL: {format_currency(metrics.gross_pnl, places)}",
        f"Trading fees: {format_currency(metrics.trading_fees, places)}",
        f"Profit share: {format_currency(metrics.profit_share, places)}",
        f"Net PnL: {format_currency(metrics.net_pnl, places)}",
        f"Total deposits: {format_currency(metrics.total_deposits, places)}",
        f"Total withdrawals: {format_currency(metrics.total_withdrawals, places)}",
        f"Total balance: {format_currency(metrics.total_balance, places)}",
        f"Trades: {metrics.trade_count} ({metrics.winning_trades} winning)",
    ]
    return "\n".join(lines)
