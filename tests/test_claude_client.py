import unittest
from datetime import datetime
from types import SimpleNamespace

from tools.claude_client import (
    BudgetExceededError,
    ClaudeClient,
    UsageLedger,
    calculate_cost,
    estimate_semantic_cost,
)


class FakeMessages:
    def __init__(self, text="ok", input_tokens=1000, output_tokens=200):
        self.text = text
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text=self.text),
                SimpleNamespace(type="tool_use", name="ignored"),
            ],
            usage=SimpleNamespace(input_tokens=self.input_tokens, output_tokens=self.output_tokens),
        )


def fake_client(**kwargs):
    return SimpleNamespace(messages=FakeMessages(**kwargs))


class CostTests(unittest.TestCase):
    def test_calculate_cost_uses_per_million_pricing(self):
        self.assertAlmostEqual(calculate_cost(1_000_000, 0), 3.0)
        self.assertAlmostEqual(calculate_cost(0, 1_000_000), 15.0)
        self.assertAlmostEqual(calculate_cost(1000, 200), 0.006)

    def test_estimate_semantic_cost_format(self):
        self.assertEqual(estimate_semantic_cost(0), "~$0.023")
        # Prompt size is capped at 100 titles
        self.assertEqual(estimate_semantic_cost(500), estimate_semantic_cost(100))


class UsageLedgerTests(unittest.TestCase):
    def test_record_accumulates(self):
        ledger = UsageLedger(monthly_budget=1.0, month="2025-01")
        cost = ledger.record("audit_series_detection", 1000, 200)
        self.assertAlmostEqual(cost, 0.006)
        self.assertEqual(ledger.input_tokens, 1000)
        self.assertEqual(ledger.output_tokens, 200)
        self.assertAlmostEqual(ledger.remaining_budget, 0.994)
        self.assertEqual(ledger.requests[0]["feature"], "audit_series_detection")

    def test_roll_month_resets_totals(self):
        ledger = UsageLedger(monthly_budget=1.0, month="2025-01")
        ledger.record("x", 1000, 200)
        ledger.roll_month(datetime(2025, 1, 31))
        self.assertEqual(ledger.input_tokens, 1000)
        ledger.roll_month(datetime(2025, 2, 1))
        self.assertEqual(ledger.month, "2025-02")
        self.assertEqual(ledger.input_tokens, 0)
        self.assertEqual(ledger.total_cost, 0.0)
        self.assertEqual(ledger.requests, [])

    def test_request_history_is_capped(self):
        ledger = UsageLedger()
        for _ in range(105):
            ledger.record("x", 1, 1)
        self.assertEqual(len(ledger.requests), 100)


class ClaudeClientTests(unittest.TestCase):
    def test_call_returns_text_usage_and_cost(self):
        client = fake_client(text='{"series": []}')
        ledger = UsageLedger(monthly_budget=5.0)
        claude = ClaudeClient(None, model="test-model", ledger=ledger, client=client)

        response = claude.call("prompt", "system", "audit_series_detection", max_output_tokens=2000)

        self.assertEqual(response.text, '{"series": []}')
        self.assertEqual(response.usage, {"input_tokens": 1000, "output_tokens": 200})
        self.assertAlmostEqual(response.cost, 0.006)
        self.assertAlmostEqual(ledger.total_cost, 0.006)

        (request,) = client.messages.requests
        self.assertEqual(request["model"], "test-model")
        self.assertEqual(request["max_tokens"], 2000)
        self.assertEqual(request["system"], "system")
        self.assertEqual(request["messages"], [{"role": "user", "content": "prompt"}])

    def test_budget_is_checked_before_the_request(self):
        client = fake_client()
        ledger = UsageLedger(monthly_budget=0.01)
        ledger.total_cost = 0.0099
        claude = ClaudeClient(None, ledger=ledger, client=client)

        with self.assertRaises(BudgetExceededError):
            claude.call("prompt", "system", "audit_series_detection", max_output_tokens=2000)
        self.assertEqual(client.messages.requests, [])

    def test_missing_api_key_without_client(self):
        with self.assertRaises(ValueError):
            ClaudeClient("")


if __name__ == "__main__":
    unittest.main()
