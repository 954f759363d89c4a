"""Claude API client with per-session cost tracking and a monthly budget."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from anthropic import Anthropic

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MONTHLY_BUDGET = 20.00

# USD per million tokens
PRICING = {
    "input": 3.00,
    "output": 15.00,
}


class BudgetExceededError(ValueError):
    """Raised before a request that would push usage past the monthly budget."""


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens / 1_000_000) * PRICING["input"] + (output_tokens / 1_000_000) * PRICING["output"]


def estimate_semantic_cost(video_count: int) -> str:
    """Rough pre-run estimate for one semantic clustering call, e.g. '~$0.026'."""
    capped = min(video_count, 100)
    input_tokens = math.ceil((400 + capped * 50) / 4)
    output_tokens = 1500
    return f"~${calculate_cost(input_tokens, output_tokens):.3f}"


@dataclass
class LLMResponse:
    text: str
    usage: Dict[str, int] = field(default_factory=dict)
    cost: float = 0.0


@dataclass
class UsageLedger:
    """Usage for one billing month. Owned by the caller, never global."""

    monthly_budget: float = DEFAULT_MONTHLY_BUDGET
    month: str = field(default_factory=lambda: datetime.utcnow().strftime("%Y-%m"))
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0
    requests: List[Dict[str, Any]] = field(default_factory=list)

    def roll_month(self, now: Optional[datetime] = None) -> None:
        current = (now or datetime.utcnow()).strftime("%Y-%m")
        if current != self.month:
            self.month = current
            self.input_tokens = 0
            self.output_tokens = 0
            self.total_cost = 0.0
            self.requests = []

    def can_afford(self, estimated_tokens: int) -> bool:
        estimated = calculate_cost(estimated_tokens // 2, estimated_tokens // 2)
        return self.total_cost + estimated <= self.monthly_budget

    def record(self, feature: str, input_tokens: int, output_tokens: int) -> float:
        cost = calculate_cost(input_tokens, output_tokens)
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.total_cost += cost
        self.requests.append(
            {
                "timestamp": datetime.utcnow().isoformat(),
                "feature": feature,
                "inputTokens": input_tokens,
                "outputTokens": output_tokens,
                "cost": cost,
            }
        )
        # Keep the last 100 requests only
        self.requests = self.requests[-100:]
        return cost

    @property
    def remaining_budget(self) -> float:
        return self.monthly_budget - self.total_cost


class ClaudeClient:
    def __init__(self, api_key, model=DEFAULT_MODEL, ledger: Optional[UsageLedger] = None, client=None):
        """Initialize Anthropic client"""
        if client is None and not api_key:
            raise ValueError("ANTHROPIC_API_KEY is missing")
        self.client = client or Anthropic(api_key=api_key)
        self.model = model
        self.ledger = ledger or UsageLedger()

    def call(self, prompt: str, system_prompt: str, feature_tag: str, max_output_tokens: int = 4096) -> LLMResponse:
        """Send one message and return its text, token usage and cost."""
        self.ledger.roll_month()
        if not self.ledger.can_afford(max_output_tokens * 2):
            raise BudgetExceededError(
                f"Monthly budget of ${self.ledger.monthly_budget:.2f} would be exceeded. "
                f"Current usage: ${self.ledger.total_cost:.2f}"
            )

        message = self.client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": prompt}],
        )

        text = "".join(block.text for block in message.content if getattr(block, "type", "") == "text")
        input_tokens = int(message.usage.input_tokens or 0)
        output_tokens = int(message.usage.output_tokens or 0)
        cost = self.ledger.record(feature_tag, input_tokens, output_tokens)

        return LLMResponse(
            text=text,
            usage={"input_tokens": input_tokens, "output_tokens": output_tokens},
            cost=cost,
        )
