"""Asset safety: parallel check scorer, blacklist and service layer."""

from arbedge.safety.blacklist import Blacklist
from arbedge.safety.scorer import SafetyCheckProvider, SafetyScorer, calculate_safety_score
from arbedge.safety.service import AssetSafetyService, CheckSummary


__all__ = [
    "AssetSafetyService",
    "Blacklist",
    "CheckSummary",
    "SafetyCheckProvider",
    "SafetyScorer",
    "calculate_safety_score",
]
