"""Crisis and harm detection.

:class:`CrisisDetector` classifies user messages into distress levels and
tracks escalation across a conversation.  :class:`HarmDetector` flags
assistant replies that blame, gaslight or minimise.

Both match fixed phrase lists case-insensitively after normalising
typographic apostrophes, and record every matching phrase rather than
stopping at the first.  A phrase must start on a word boundary but may run
into a longer word, so "self harm" also catches "self harming" and
"hopeless" catches "hopelessness".
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from aimate.safety.models import (
    CrisisAnalysis,
    DistressLevel,
    EscalationState,
    HarmAnalysis,
    Sensitivity,
)

# ---------------------------------------------------------------------------
# Phrase lists
# ---------------------------------------------------------------------------

CRITICAL_TRIGGERS: tuple[str, ...] = (
    # Suicidal ideation
    "kill myself", "killing myself", "end my life", "ending my life",
    "take my own life", "want to die", "wanna die", "suicide", "suicidal",
    "not worth living", "no reason to live", "better off dead",
    "better off without me", "end it all",
    # Cannot continue
    "can do this anymore", "can't do this anymore", "cant do this anymore",
    "cannot do this anymore",
    # Self-harm
    "cutting myself", "hurting myself", "hurt myself", "self harm", "self-harm",
    # Imminent danger
    "going to do it tonight", "do it tonight", "going to do it right now",
    "have the pills", "have a gun", "have a rope",
    # Farewells
    "goodbye forever", "this is goodbye", "this is my last message",
    "my final message", "won't be here tomorrow", "won't be here much longer",
)

ELEVATED_TRIGGERS: tuple[str, ...] = (
    # Hopelessness
    "no hope", "hopeless", "pointless", "give up", "giving up", "can't go on",
    "cannot go on", "worthless",
    # Severe distress
    "can't take it", "too much", "unbearable", "overwhelming", "overwhelmed",
    # Abuse context
    "gaslighting", "abusive", "manipulating", "controlling",
    # Isolation
    "nobody cares", "alone", "no one", "abandoned",
)

# Only consulted above Conservative sensitivity
MILD_TRIGGERS: tuple[str, ...] = (
    "stressed", "anxious", "sad", "exhausted", "struggling", "burnt out",
    "burned out", "lonely", "can't sleep", "down lately",
)

HARM_PATTERNS: dict[str, tuple[str, ...]] = {
    "victim_blaming": (
        "you enabled", "your engagement contributed", "you allowed",
        "you chose to", "you participated", "your responsibility",
        "you could have stopped",
    ),
    "gaslighting": (
        "you're overreacting", "it wasn't that bad", "you're too sensitive",
        "you misunderstood", "that didn't happen", "you're imagining",
    ),
    "minimization": (
        "it's not a big deal", "others have it worse", "at least",
        "look on the bright side",
        "everything happens for a reason",
    ),
}

ESCALATION_TRIGGER = "escalating_pattern"
DEFAULT_ESCALATION_WINDOW = timedelta(minutes=15)
DEFAULT_ESCALATION_THRESHOLD = 3

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "ʼ": "'"})


def normalize(text: str) -> str:
    """Lower-case *text*, unify apostrophes and collapse whitespace."""
    return " ".join(text.translate(_APOSTROPHES).lower().split())


def _compile(phrases: Iterable[str]) -> list[tuple[str, re.Pattern[str]]]:
    return [(p, re.compile(rf"(?<!\w){re.escape(p)}")) for p in phrases]


def _matches(text: str, patterns: list[tuple[str, re.Pattern[str]]]) -> list[str]:
    return [phrase for phrase, pattern in patterns if pattern.search(text)]


_CRITICAL = _compile(CRITICAL_TRIGGERS)
_ELEVATED = _compile(ELEVATED_TRIGGERS)
_MILD = _compile(MILD_TRIGGERS)
_HARM = {category: _compile(phrases) for category, phrases in HARM_PATTERNS.items()}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Crisis detection
# ---------------------------------------------------------------------------


class CrisisDetector:
    """Classifies user messages and applies the escalation rule.

    Parameters
    ----------
    window : timedelta
        Maximum gap between distress messages for them to count as one
        escalating streak.
    threshold : int
        Streak length at which a message is upgraded to CRITICAL.
    clock : callable
        Returns the current time; tests substitute a fake clock.
    """

    def __init__(
        self,
        window: timedelta = DEFAULT_ESCALATION_WINDOW,
        threshold: int = DEFAULT_ESCALATION_THRESHOLD,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.window = window
        self.threshold = threshold
        self._clock = clock or _utcnow

    def classify(
        self, text: str, sensitivity: Sensitivity = Sensitivity.CONSERVATIVE
    ) -> CrisisAnalysis:
        """Classify *text* on its own, without escalation history."""
        normalized = normalize(text)

        critical = _matches(normalized, _CRITICAL)
        if critical:
            return CrisisAnalysis(level=DistressLevel.CRITICAL, triggers=critical)

        elevated = _matches(normalized, _ELEVATED)
        if sensitivity is Sensitivity.AGGRESSIVE:
            elevated += _matches(normalized, _MILD)
        if elevated:
            return CrisisAnalysis(level=DistressLevel.ELEVATED, triggers=elevated)

        if sensitivity is Sensitivity.MODERATE:
            mild = _matches(normalized, _MILD)
            if mild:
                return CrisisAnalysis(level=DistressLevel.MILD, triggers=mild)

        return CrisisAnalysis()

    def analyze(
        self,
        text: str,
        state: EscalationState,
        sensitivity: Sensitivity = Sensitivity.CONSERVATIVE,
    ) -> CrisisAnalysis:
        """Classify *text* and update the conversation's escalation *state*.

        Each ELEVATED-or-worse message extends the streak; a streak whose
        last message is older than the window starts over.  When the
        previous distress message is inside the window and the streak has
        reached the threshold, the analysis is upgraded to CRITICAL.  A
        message with no distress at all resets the state; MILD messages
        leave it untouched.
        """
        analysis = self.classify(text, sensitivity)
        now = self._clock()

        if analysis.level >= DistressLevel.ELEVATED:
            last = state.last_distress_at
            within_window = last is not None and now - last < self.window
            if last is not None and not within_window:
                state.consecutive_distress_messages = 0
            state.consecutive_distress_messages += 1

            if within_window and state.consecutive_distress_messages >= self.threshold:
                analysis.level = DistressLevel.CRITICAL
                analysis.triggers.append(ESCALATION_TRIGGER)

            state.last_distress_at = now
        elif analysis.level is DistressLevel.NONE:
            state.reset()

        return analysis


# ---------------------------------------------------------------------------
# Harm detection
# ---------------------------------------------------------------------------


class HarmDetector:
    """Flags harmful patterns in assistant replies.  Stateless."""

    def analyze(self, text: str) -> HarmAnalysis:
        normalized = normalize(text)
        analysis = HarmAnalysis()
        for category, patterns in _HARM.items():
            for phrase in _matches(normalized, patterns):
                analysis.patterns.append(f"{category}: {phrase}")
        return analysis
