"""Chat turn orchestration."""

from aimate.chat.service import ChatService, TurnEvent, TurnOutcome, TurnStatus

__all__ = ["ChatService", "TurnEvent", "TurnOutcome", "TurnStatus"]
