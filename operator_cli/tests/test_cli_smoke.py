"""Smoke tests for the operator CLI."""

import json
import sys
import tempfile
import unittest
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path

from operator_cli.cli import main


@contextmanager
def _redirect_stdin(stream):
    original = sys.stdin
    try:
        sys.stdin = stream
        yield
    finally:
        sys.stdin = original


EXPORT = {
    "settings": [
        {"pool_type": "scalping", "profit_share_rate": 0.2},
        {"pool_type": "vip", "profit_share_rate": 0.3},
    ],
    "investors": [
        {
            "id": "inv-a",
            "wallet_address": "0xAAA",
            "pool_type": "scalping",
            "invested_amount": 10000,
            "created_date": "2024-01-01T00:00:00Z",
        },
        {
            "id": "inv-b",
            "wallet_address": "0xBBB",
            "pool_type": "scalping",
            "invested_amount": 15000,
            "created_date": "2024-01-03T00:00:00Z",
        },
        {
            "id": "inv-v",
            "wallet_address": "0xVVV",
            "pool_type": "vip",
            "invested_amount": 50000,
            "created_date": "2024-01-01T00:00:00Z",
        },
    ],
    "trades": [
        {"pool_type": "scalping", "created_date": "2024-01-02T00:00:00Z", "pnl": 1000, "fee": 10, "result": "win"},
        {"pool_type": "scalping", "created_date": "2024-01-04T00:00:00Z", "pnl": -500, "fee": 10, "result": "loss"},
        {"pool_type": "vip", "created_date": "2024-01-02T00:00:00Z", "pnl": 900, "fee": 0, "result": "win"},
    ],
    "withdrawals": [
        {
            "pool_type": "scalping",
            "amount": 5000,
            "created_date": "2024-01-05T00:00:00Z",
            "status": "paid",
            "wallet_address": "0xaaa",
        },
        {
            "pool_type": "scalping",
            "amount": 100,
            "created_date": "2024-01-05T00:00:00Z",
            "status": "pending",
            "wallet_address": "0xbbb",
        },
    ],
}


class OperatorCliSmokeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.export_path = Path(self.tempdir.name) / "export.json"
        self.export_path.write_text(json.dumps(EXPORT))

    def _run(self, args):
        out = StringIO()
        err = StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(args)
        return code, out.getvalue(), err.getvalue()

    def test_balances_outputs_json(self) -> None:
        code, output, _ = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "scalping"]
        )

        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["pool_type"], "scalping")
        by_id = {item["investor_id"]: item for item in payload["investors"]}
        self.assertEqual(set(by_id), {"inv-a", "inv-b"})
        self.assertEqual(float(by_id["inv-a"]["net_pnl"]), 588.0)
        self.assertEqual(float(by_id["inv-a"]["current_balance"]), 5588.0)
        self.assertEqual(float(by_id["inv-a"]["ownership_pct"]), 25.0)
        self.assertEqual(float(payload["total_pool_value"]), 20282.0)
        self.assertEqual(payload["diagnostics"], [])

    def test_rate_override_and_pool_selection(self) -> None:
        code, output, _ = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "VIP", "--rate", "0"]
        )

        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(len(payload["investors"]), 1)
        self.assertEqual(float(payload["investors"][0]["net_pnl"]), 900.0)

    def test_pool_settings_rate_is_used(self) -> None:
        code, output, _ = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "vip"]
        )

        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(float(payload["investors"][0]["manager_share_paid"]), 270.0)

    def test_balances_text_report(self) -> None:
        code, output, _ = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "scalping", "--format", "text"]
        )

        self.assertEqual(code, 0)
        self.assertIn("Pool balances - scalping", output)
        self.assertIn("Current balance: $5,588.00", output)

    def test_metrics_from_stdin(self) -> None:
        with _redirect_stdin(StringIO(json.dumps(EXPORT))):
            code, output, _ = self._run(["metrics", "--input", "-", "--pool", "scalping"])

        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(float(payload["gross_pnl"]), 500.0)
        self.assertEqual(float(payload["total_withdrawals"]), 5000.0)
        self.assertEqual(payload["trade_count"], 2)

    def test_replay_includes_steps(self) -> None:
        code, output, _ = self._run(
            ["replay", "--input", str(self.export_path), "--pool", "scalping"]
        )

        self.assertEqual(code, 0)
        payload = json.loads(output)
        kinds = [step["event"]["kind"] for step in payload["steps"]]
        self.assertEqual(kinds, ["deposit", "trade", "deposit", "trade", "withdrawal"])
        self.assertEqual(len(payload["steps"][3]["allocations"]), 2)

    def test_invalid_rate_returns_error_code(self) -> None:
        code, output, error = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "scalping", "--rate", "2"]
        )

        self.assertEqual(code, 2)
        self.assertEqual(output, "")
        self.assertIn("ERROR", error)

    def test_missing_input_returns_error_code(self) -> None:
        code, _, error = self._run(
            ["balances", "--input", str(Path(self.tempdir.name) / "missing.json"), "--pool", "scalping"]
        )

        self.assertEqual(code, 2)
        self.assertIn("ERROR", error)

    def test_malformed_deposit_transactions_are_reported(self) -> None:
        export = json.loads(json.dumps(EXPORT))
        export["investors"][1]["deposit_transactions"] = [5]
        self.export_path.write_text(json.dumps(export))

        code, output, _ = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "scalping"]
        )

        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual([item["investor_id"] for item in payload["investors"]], ["inv-a"])
        codes = [item["code"] for item in payload["diagnostics"]]
        self.assertIn("invalid_timestamp", codes)

    def test_non_object_input_is_rejected(self) -> None:
        self.export_path.write_text("[1, 2, 3]")

        code, _, error = self._run(
            ["balances", "--input", str(self.export_path), "--pool", "scalping"]
        )

        self.assertEqual(code, 2)
        self.assertIn("JSON object", error)


if __name__ == "__main__":
    unittest.main()

