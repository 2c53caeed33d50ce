"""Local-first FastAPI shell for pool balances and metrics."""

from __future__ import annotations

import html
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from pool_engine.config import get_settings
from pool_engine.engine import calculate_time_based_balances
from pool_engine.log import setup_logging
from pool_engine.metrics import calculate_pool_metrics
from pool_engine.models import (
    InvestorRecord,
    PoolSettings,
    TradeRecord,
    WithdrawalRecord,
    to_decimal,
)
from pool_engine.report import format_currency, format_percent

setup_logging(get_settings().log_level)

app = FastAPI(title="Pool Ledger", description="Local-first pool balance shell")


class PoolRecordsRequest(BaseModel):
    investors: List[Dict[str, Any]] = Field(default_factory=list)
    trades: List[Dict[str, Any]] = Field(default_factory=list)
    withdrawals: List[Dict[str, Any]] = Field(default_factory=list)
    profit_share_rate: Optional[Decimal] = None
    lock_in_days: Optional[int] = None
    include_steps: bool = False


@app.middleware("http")
async def _local_only(request: Request, call_next):
    client = request.client
    if client is not None:
        host = client.host
        if host not in {"127.0.0.1", "::1", "testclient"}:
            return JSONResponse({"error": "Remote access disabled."}, status_code=403)
    return await call_next(request)


async def _handle_errors(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc)}, status_code=400)


for _exc_class in (ValueError, KeyError):
    app.add_exception_handler(_exc_class, _handle_errors)


@app.get("/", response_class=HTMLResponse)
async def dashboard() -> HTMLResponse:
    return HTMLResponse(_render_dashboard())


@app.get("/api/health")
async def health() -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "default_profit_share_rate": str(settings.default_profit_share_rate),
    }


@app.post("/api/pools/{pool_type}/balances")
async def pool_balances(pool_type: str, payload: PoolRecordsRequest) -> dict:
    settings, investors, trades, withdrawals = _records_from_request(pool_type, payload)
    result = calculate_time_based_balances(settings, investors, trades, withdrawals)
    return result.to_dict(include_steps=payload.include_steps)


@app.post("/api/pools/{pool_type}/metrics")
async def pool_metrics(pool_type: str, payload: PoolRecordsRequest) -> dict:
    settings, investors, trades, withdrawals = _records_from_request(pool_type, payload)
    return calculate_pool_metrics(settings, investors, trades, withdrawals).to_dict()


@app.post("/calculate", response_class=HTMLResponse)
async def calculate(
    pool_type: str = Form(...),
    records_json: str = Form(...),
    profit_share_rate: Optional[str] = Form(None),
) -> HTMLResponse:
    try:
        raw = json.loads(records_json)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Records must be valid JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise ValueError("Records must be a JSON object with investors, trades and withdrawals.")

    rate: Optional[Decimal] = None
    if profit_share_rate not in (None, ""):
        rate = to_decimal(profit_share_rate)
    payload = PoolRecordsRequest(
        investors=raw.get("investors") or [],
        trades=raw.get("trades") or [],
        withdrawals=raw.get("withdrawals") or [],
        profit_share_rate=rate,
    )

    settings, investors, trades, withdrawals = _records_from_request(pool_type, payload)
    result = calculate_time_based_balances(settings, investors, trades, withdrawals)
    places = get_settings().display_places

    rows = "".join(
        "<tr>"
        f"<td>{html.escape(balance.investor_id)}</td>"
        f"<td>{html.escape(balance.wallet_address)}</td>"
        f"<td>{format_percent(balance.ownership_pct, places)}</td>"
        f"<td>{format_currency(balance.net_pnl, places)}</td>"
        f"<td>{format_currency(balance.current_balance, places)}</td>"
        "</tr>"
        for balance in result.investors
    )
    diagnostics = "".join(
        f"<li>{html.escape(item.code.value)}: {html.escape(item.message)}</li>"
        for item in result.diagnostics
    )
    raw_json = html.escape(json.dumps(result.to_dict(), indent=2))

    result_section = f"""
    <section class="panel">
      <h2>Balances for {html.escape(result.pool_type)}</h2>
      <p>Total pool value: {format_currency(result.total_pool_value, places)}</p>
      <table>
        <thead>
          <tr><th>Investor</th><th>Wallet</th><th>Ownership</th><th>Net PnL</th><th>Balance</th></tr>
        </thead>
        <tbody>{rows}</tbody>
      </table>
      {f'<h3>Diagnostics</h3><ul class="warning">{diagnostics}</ul>' if diagnostics else ''}
      <h3>Raw JSON</h3>
      <pre>{raw_json}</pre>
    </section>
"""
    return HTMLResponse(_render_dashboard(result_section))


def _records_from_request(
    pool_type: str, payload: PoolRecordsRequest
) -> Tuple[PoolSettings, List[InvestorRecord], List[TradeRecord], List[WithdrawalRecord]]:
    pool_type = pool_type.strip().lower()
    if not pool_type:
        raise ValueError("pool_type is required.")

    default_rate: Decimal = get_settings().default_profit_share_rate
    settings = PoolSettings.from_dict(
        {
            "pool_type": pool_type,
            "profit_share_rate": payload.profit_share_rate,
            "lock_in_days": payload.lock_in_days,
        },
        default_rate,
    )
    investors = [InvestorRecord.from_dict(row) for row in payload.investors]
    trades = [TradeRecord.from_dict(row) for row in payload.trades]
    withdrawals = [WithdrawalRecord.from_dict(row) for row in payload.withdrawals]
    return settings, investors, trades, withdrawals


def _render_dashboard(result_section: str = "") -> str:
    settings = get_settings()
    default_rate = html.escape(str(settings.default_profit_share_rate))
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <title>Pool Ledger</title>
  <style>
    body {{ font-family: "Segoe UI", Arial, sans-serif; margin: 0 auto; max-width: 960px; padding: 1.5rem 2rem; }}
    .panel {{ border: 1px solid #d3d8e0; border-radius: 12px; padding: 1.5rem; margin-bottom: 1.5rem; }}
    label {{ display: block; margin: 0.75rem 0 0.25rem; font-weight: 600; }}
    input, textarea {{ width: 100%; padding: 0.5rem; }}
    textarea {{ min-height: 14rem; font-family: monospace; }}
    table {{ width: 100%; border-collapse: collapse; }}
    th, td {{ text-align: left; padding: 0.4rem; border-bottom: 1px solid #d3d8e0; }}
    .muted {{ color: #596273; }}
    .warning {{ color: #c28a10; }}
  </style>
</head>
<body>
  <header>
    <h1>Pool Ledger</h1>
    <div class="muted">Time-based ownership and PnL distribution per pool.</div>
  </header>
  <main>
    <section class="panel">
      <form action="/calculate" method="post">
        <label>Pool type</label>
        <input name="pool_type" value="scalping" required />
        <label>Profit share rate (default {default_rate})</label>
        <input type="number" step="any" min="0" max="1" name="profit_share_rate" />
        <label>Records JSON</label>
        <textarea name="records_json" required>{{"investors": [], "trades": [], "withdrawals": []}}</textarea>
        <button type="submit">Calculate balances</button>
      </form>
    </section>
    {result_section}
  </main>
</body>
</html>"""
