"""Core turn engine for tether."""

from .cost import CostAccumulator, TurnCostRecord
from .orchestrator import TurnEvent, TurnOrchestrator, TurnResult, TurnState
from .tokens import NullTokenCounter, TiktokenCounter, TokenCounter

__all__ = [
    "CostAccumulator",
    "NullTokenCounter",
    "TiktokenCounter",
    "TokenCounter",
    "TurnCostRecord",
    "TurnEvent",
    "TurnOrchestrator",
    "TurnResult",
    "TurnState",
]
