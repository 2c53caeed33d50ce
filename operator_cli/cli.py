"""Operator CLI for pool balance replays."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pool_engine.config import get_settings
from pool_engine.engine import calculate_time_based_balances
from pool_engine.log import setup_logging
from pool_engine.metrics import calculate_pool_metrics
from pool_engine.models import InvestorRecord, PoolSettings, TradeRecord, WithdrawalRecord
from pool_engine.report import render_balances, render_metrics

logger = logging.getLogger(__name__)

PoolInputs = Tuple[PoolSettings, List[InvestorRecord], List[TradeRecord], List[WithdrawalRecord]]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="pool-ledger")
    subparsers = parser.add_subparsers(dest="command", required=True)

    balances_parser = subparsers.add_parser("balances")
    _add_input_args(balances_parser)
    balances_parser.add_argument("--format", choices=("json", "text"), default="json")
    balances_parser.set_defaults(func=_balances)

    metrics_parser = subparsers.add_parser("metrics")
    _add_input_args(metrics_parser)
    metrics_parser.add_argument("--format", choices=("json", "text"), default="json")
    metrics_parser.set_defaults(func=_metrics)

    replay_parser = subparsers.add_parser("replay")
    _add_input_args(replay_parser)
    replay_parser.set_defaults(func=_replay)

    args = parser.parse_args(argv)
    setup_logging(get_settings().log_level)

    try:
        return args.func(args)
    except (ValueError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _balances(args: argparse.Namespace) -> int:
    settings, investors, trades, withdrawals = _load_inputs(args)
    result = calculate_time_based_balances(settings, investors, trades, withdrawals)
    if args.format == "text":
        print(render_balances(result, places=get_settings().display_places))
    else:
        print(json.dumps(result.to_dict(), indent=2))
    return 0


def _metrics(args: argparse.Namespace) -> int:
    settings, investors, trades, withdrawals = _load_inputs(args)
    metrics = calculate_pool_metrics(settings, investors, trades, withdrawals)
    if args.format == "text":
        print(render_metrics(metrics, places=get_settings().display_places))
    else:
        print(json.dumps(metrics.to_dict(), indent=2))
    return 0


def _replay(args: argparse.Namespace) -> int:
    settings, investors, trades, withdrawals = _load_inputs(args)
    result = calculate_time_based_balances(settings, investors, trades, withdrawals)
    print(json.dumps(result.to_dict(include_steps=True), indent=2))
    return 0


def _add_input_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", required=True, help="JSON export of pool records, or - for stdin.")
    parser.add_argument("--pool", required=True, help="Pool type to replay, e.g. scalping.")
    parser.add_argument("--rate", help="Profit share rate override between 0 and 1.")


def _load_inputs(args: argparse.Namespace) -> PoolInputs:
    payload = _load_payload(args.input)
    pool_type = args.pool.strip().lower()

    settings = _resolve_settings(payload.get("settings"), pool_type, args.rate)
    investors = [
        InvestorRecord.from_dict(row)
        for row in _rows(payload, "investors")
        if _in_pool(row, pool_type)
    ]
    trades = [
        TradeRecord.from_dict(row) for row in _rows(payload, "trades") if _in_pool(row, pool_type)
    ]
    withdrawals = [
        WithdrawalRecord.from_dict(row)
        for row in _rows(payload, "withdrawals")
        if _in_pool(row, pool_type)
    ]
    logger.info(
        "Loaded %d investors, %d trades, %d withdrawals for pool %s",
        len(investors),
        len(trades),
        len(withdrawals),
        pool_type,
    )
    return settings, investors, trades, withdrawals


def _load_payload(source: str) -> Dict[str, object]:
    if source == "-":
        payload = json.loads(sys.stdin.read())
    else:
        payload = json.loads(Path(source).read_text())
    if not isinstance(payload, dict):
        raise ValueError("Input must be a JSON object with investors, trades and withdrawals.")
    return payload


def _rows(payload: Dict[str, object], key: str) -> List[Dict[str, object]]:
    rows = payload.get(key) or []
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise ValueError(f"'{key}' must be a list of objects.")
    return rows


def _in_pool(row: Dict[str, object], pool_type: str) -> bool:
    row_pool = row.get("pool_type")
    return not row_pool or str(row_pool).strip().lower() == pool_type


def _resolve_settings(raw: object, pool_type: str, rate_override: Optional[str]) -> PoolSettings:
    default_rate = get_settings().default_profit_share_rate
    entries = raw if isinstance(raw, list) else [raw] if isinstance(raw, dict) else []

    data: Dict[str, object] = {"pool_type": pool_type}
    for entry in entries:
        if isinstance(entry, dict) and str(entry.get("pool_type", pool_type)).strip().lower() == pool_type:
            data = dict(entry, pool_type=pool_type)
            break

    if rate_override is not None:
        data["profit_share_rate"] = rate_override
    return PoolSettings.from_dict(data, default_rate)


if __name__ == "__main__":
    raise SystemExit(main())
