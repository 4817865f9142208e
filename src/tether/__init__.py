"""tether - a tool-calling chat agent."""

from .core import CostAccumulator, TurnOrchestrator, TurnResult, TurnState
from .errors import ClassifiedError, ErrorKind, classify
from .tools import ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "ClassifiedError",
    "CostAccumulator",
    "ErrorKind",
    "ToolRegistry",
    "TurnOrchestrator",
    "TurnResult",
    "TurnState",
    "classify",
]
