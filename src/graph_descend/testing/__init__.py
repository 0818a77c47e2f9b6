"""Helpers for testing code that uses lowered plans."""

from .evaluator import InMemoryEvaluator

__all__ = [
    "InMemoryEvaluator",
]
