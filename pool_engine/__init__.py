from .config import EngineSettings, get_settings
from .diagnostics import Diagnostic, DiagnosticCategory, DiagnosticCode
from .engine import calculate_time_based_balances, replay
from .metrics import calculate_pool_metrics
from .models import (
    DepositEvent,
    DepositTransaction,
    InvestorBalance,
    InvestorRecord,
    PoolBalances,
    PoolMetrics,
    PoolSettings,
    ReplayStep,
    TradeEvent,
    TradeRecord,
    WithdrawalEvent,
    WithdrawalRecord,
    clean_wallet_address,
)
from .normalizer import normalize_events, parse_timestamp

__all__ = [
    "DepositEvent",
    "DepositTransaction",
    "Diagnostic",
    "DiagnosticCategory",
    "DiagnosticCode",
    "EngineSettings",
    "InvestorBalance",
    "InvestorRecord",
    "PoolBalances",
    "PoolMetrics",
    "PoolSettings",
    "ReplayStep",
    "TradeEvent",
    "TradeRecord",
    "WithdrawalEvent",
    "WithdrawalRecord",
    "calculate_pool_metrics",
    "calculate_time_based_balances",
    "clean_wallet_address",
    "get_settings",
    "normalize_events",
    "parse_timestamp",
    "replay",
]
