"""Per-session cost accounting."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from loguru import logger

from tether.config import ModelPrice

DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class TurnCostRecord:
    """Cost of one completion call."""

    input_tokens: int
    output_tokens: int
    cost: float
    currency: str
    model: str

    def format(self) -> str:
        return f"{self.cost:.6f} {self.currency} (+{self.input_tokens}i/+{self.output_tokens}o)"


class CostAccumulator:
    """Running cost total for one session.

    Calls for models missing from the price table cost nothing but their
    tokens are still counted.
    """

    def __init__(self, pricing: Mapping[str, ModelPrice], currency: str = DEFAULT_CURRENCY) -> None:
        self._pricing = dict(pricing)
        self.currency = currency
        self.total = 0.0
        self.input_tokens = 0
        self.output_tokens = 0
        self.calls = 0

    def price_for(self, model: str) -> ModelPrice | None:
        return self._pricing.get(model)

    def record_call(self, input_tokens: int, output_tokens: int, model: str) -> TurnCostRecord:
        price = self.price_for(model)
        if price is None:
            logger.debug("cost.price.missing model={}", model)
            cost = 0.0
            currency = self.currency
        else:
            cost = (
                input_tokens / 1_000_000 * price.input_cost_per_million
                + output_tokens / 1_000_000 * price.output_cost_per_million
            )
            currency = price.currency

        self.total += cost
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.calls += 1
        record = TurnCostRecord(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            currency=currency,
            model=model,
        )
        logger.debug("cost.call.recorded model={} {}", model, record.format())
        return record

    def format_total(self) -> str:
        return f"{self.total:.6f} {self.currency}"
