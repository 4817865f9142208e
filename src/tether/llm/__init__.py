"""Completion endpoint client."""

from .client import CompletionClient, CompletionResult, TokenUsage

__all__ = ["CompletionClient", "CompletionResult", "TokenUsage"]
