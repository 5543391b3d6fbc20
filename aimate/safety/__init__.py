"""Mental-health safety: crisis and harm detection plus regional crisis contacts.

The interceptor itself lives in :mod:`aimate.safety.plugin`.
"""

from aimate.safety.detector import CrisisDetector, HarmDetector
from aimate.safety.models import (
    CrisisAnalysis,
    CrisisHotline,
    CrisisResources,
    DistressLevel,
    EscalationState,
    HarmAnalysis,
    Sensitivity,
)
from aimate.safety.resources import DEFAULT_REGION, CrisisResourceDatabase

__all__ = [
    "DEFAULT_REGION",
    "CrisisAnalysis",
    "CrisisDetector",
    "CrisisHotline",
    "CrisisResourceDatabase",
    "CrisisResources",
    "DistressLevel",
    "EscalationState",
    "HarmAnalysis",
    "HarmDetector",
    "Sensitivity",
]
