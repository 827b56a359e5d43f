"""Chat turn pipeline: clarification, grounding, generation, repair."""

from src.chat.orchestrator import TurnOrchestrator, TurnResult, TurnState

__all__ = [
    "TurnOrchestrator",
    "TurnResult",
    "TurnState",
]
