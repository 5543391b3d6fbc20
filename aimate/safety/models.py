"""Data models for the mental-health safety monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional


class DistressLevel(IntEnum):
    """Ordered severity of a user message."""

    NONE = 0
    MILD = 1
    ELEVATED = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class Sensitivity(str, Enum):
    """How eagerly everyday stress vocabulary is treated as distress."""

    CONSERVATIVE = "Conservative"  # mild vocabulary ignored
    MODERATE = "Moderate"  # mild vocabulary scores MILD
    AGGRESSIVE = "Aggressive"  # mild vocabulary scores ELEVATED


@dataclass
class CrisisAnalysis:
    """Classification of a single user message."""

    level: DistressLevel = DistressLevel.NONE
    triggers: list[str] = field(default_factory=list)

    @property
    def is_critical(self) -> bool:
        return self.level is DistressLevel.CRITICAL

    @property
    def is_elevated(self) -> bool:
        return self.level is DistressLevel.ELEVATED


@dataclass
class HarmAnalysis:
    """Harmful patterns found in an assistant reply."""

    patterns: list[str] = field(default_factory=list)  # "category: phrase"

    @property
    def is_harmful(self) -> bool:
        return bool(self.patterns)


@dataclass
class EscalationState:
    """Running count of consecutive distress messages in one conversation."""

    consecutive_distress_messages: int = 0
    last_distress_at: Optional[datetime] = None

    def reset(self) -> None:
        self.consecutive_distress_messages = 0
        self.last_distress_at = None


@dataclass
class CrisisHotline:
    name: str
    number: str
    available: str = "24/7"
    can_text: bool = False


@dataclass
class CrisisResources:
    """Crisis contacts for one region."""

    code: str
    region: str
    hotlines: list[CrisisHotline] = field(default_factory=list)
    web_chats: list[str] = field(default_factory=list)
    emergency: str = ""
