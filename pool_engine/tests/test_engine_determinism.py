"""Determinism and ordering tests for the replay engine."""

import decimal
import os
import unittest
from decimal import Decimal

from pool_engine.engine import calculate_time_based_balances
from pool_engine.models import InvestorRecord, PoolSettings, TradeRecord, WithdrawalRecord


def _investor(investor_id, amount, date):
    return InvestorRecord(
        id=investor_id,
        wallet_address=f"0x{investor_id.lower()}",
        pool_type="vip",
        invested_amount=amount,
        created_date=date,
    )


def _trade(pnl, fee, date, trade_id=None):
    return TradeRecord(pool_type="vip", date=date, pnl=pnl, fee=fee, id=trade_id)


class ReplayDeterminismTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = PoolSettings(pool_type="vip", profit_share_rate=Decimal("0.25"))
        self.investors = [
            _investor("A", "3333.33", "2024-02-01T09:00:00Z"),
            _investor("B", "1234.56", "2024-02-01T10:00:00Z"),
            _investor("C", "777.77", "2024-02-02T10:00:00Z"),
        ]
        self.trades = [
            _trade("101.01", "0.33", "2024-02-01T12:00:00Z"),
            _trade("-57.7", "0.21", "2024-02-02T12:00:00Z"),
            _trade("12.345", "0.05", "2024-02-03T12:00:00Z"),
        ]
        self.withdrawals = [
            WithdrawalRecord(
                pool_type="vip",
                amount="100",
                created_date="2024-02-02T18:00:00Z",
                status="paid",
                investor_id="B",
            )
        ]

    def _run(self):
        return calculate_time_based_balances(
            self.settings, self.investors, self.trades, self.withdrawals
        )

    def test_same_input_same_output(self) -> None:
        first = self._run()
        second = self._run()

        self.assertEqual(first, second)
        self.assertEqual(first.to_dict(include_steps=True), second.to_dict(include_steps=True))

    def test_input_list_order_does_not_change_output(self) -> None:
        baseline = self._run()
        shuffled = calculate_time_based_balances(
            self.settings,
            list(reversed(self.investors)),
            list(reversed(self.trades)),
            self.withdrawals,
        )

        self.assertEqual(
            [item.to_dict() for item in baseline.investors],
            [item.to_dict() for item in shuffled.investors],
        )

    def test_caller_decimal_context_does_not_affect_output(self) -> None:
        baseline = self._run().to_dict()

        with decimal.localcontext() as ctx:
            ctx.prec = 6
            ctx.rounding = decimal.ROUND_DOWN
            after = self._run().to_dict()

        self.assertEqual(baseline, after)

    def test_environment_changes_do_not_affect_output(self) -> None:
        baseline = self._run().to_dict()
        os.environ["POOL_ENGINE_TEST_ENV"] = "changed"
        self.addCleanup(os.environ.pop, "POOL_ENGINE_TEST_ENV", None)

        after = self._run().to_dict()

        self.assertEqual(baseline, after)


class SameInstantOrderingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = PoolSettings(pool_type="vip", profit_share_rate=Decimal("0.20"))

    def test_deposit_counts_before_same_instant_trade(self) -> None:
        investors = [
            _investor("A", 10000, "2024-03-01T00:00:00Z"),
            _investor("B", 10000, "2024-03-02T00:00:00Z"),
        ]
        trades = [_trade(1000, 0, "2024-03-02T00:00:00Z")]

        result = calculate_time_based_balances(self.settings, investors, trades)

        kinds = [step.event.kind.value for step in result.steps]
        self.assertEqual(kinds, ["deposit", "deposit", "trade"])
        self.assertEqual(result.balance_for("A").net_pnl, Decimal("400"))
        self.assertEqual(result.balance_for("B").net_pnl, Decimal("400"))

    def test_tie_break_is_load_bearing(self) -> None:
        trades = [_trade(1000, 0, "2024-03-02T00:00:00Z")]
        same_instant = calculate_time_based_balances(
            self.settings,
            [
                _investor("A", 10000, "2024-03-01T00:00:00Z"),
                _investor("B", 10000, "2024-03-02T00:00:00Z"),
            ],
            trades,
        )
        deposit_after_trade = calculate_time_based_balances(
            self.settings,
            [
                _investor("A", 10000, "2024-03-01T00:00:00Z"),
                _investor("B", 10000, "2024-03-02T00:00:01Z"),
            ],
            trades,
        )

        self.assertNotEqual(
            same_instant.balance_for("A").net_pnl,
            deposit_after_trade.balance_for("A").net_pnl,
        )
        self.assertEqual(deposit_after_trade.balance_for("A").net_pnl, Decimal("800"))
        self.assertEqual(deposit_after_trade.balance_for("B").net_pnl, Decimal("0"))

    def test_withdrawal_applies_after_same_instant_trade(self) -> None:
        investors = [
            _investor("A", 10000, "2024-03-01T00:00:00Z"),
            _investor("B", 10000, "2024-03-01T00:00:00Z"),
        ]
        trades = [_trade(1000, 0, "2024-03-05T00:00:00Z")]
        withdrawals = [
            WithdrawalRecord(
                pool_type="vip",
                amount=5000,
                created_date="2024-03-05T00:00:00Z",
                status="paid",
                investor_id="A",
            )
        ]

        result = calculate_time_based_balances(self.settings, investors, trades, withdrawals)

        kinds = [step.event.kind.value for step in result.steps]
        self.assertEqual(kinds, ["deposit", "deposit", "trade", "withdrawal"])
        self.assertEqual(result.balance_for("A").net_pnl, Decimal("400"))
        self.assertEqual(result.balance_for("B").net_pnl, Decimal("400"))

    def test_same_instant_trades_keep_input_order(self) -> None:
        investors = [_investor("A", 1000, "2024-03-01T00:00:00Z")]
        trades = [
            _trade(10, 0, "2024-03-02T00:00:00Z", "t-2"),
            _trade(-5, 0, "2024-03-02T00:00:00Z", "t-1"),
            _trade(7, 0, "2024-03-02T00:00:00Z", "t-3"),
        ]

        result = calculate_time_based_balances(self.settings, investors, trades)

        trade_ids = [step.event.trade_id for step in result.steps if step.event.kind.value == "trade"]
        self.assertEqual(trade_ids, ["t-2", "t-1", "t-3"])
        self.assertEqual([step.sequence for step in result.steps], [1, 2, 3, 4])


if __name__ == "__main__":
    unittest.main()
