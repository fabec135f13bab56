"""Heuristic urgency scoring for regulatory alerts.

score = source base priority
        + weight of every urgent keyword present in the text
        + recency bonus (+3 under 6h, +2 under 24h, +1 under 72h)
        + recall class bonus (Class I +4, Class II +2)

The score is clamped to 0..20 and mapped to a level through thresholds.
Every term is non-negative, so adding a keyword or raising the recall class
never lowers the score.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from regiq.config import settings

MIN_SCORE = 0
MAX_SCORE = 20

DEFAULT_KEYWORD_WEIGHTS: dict[str, int] = {
    "recall": 2,
    "outbreak": 2,
    "contamination": 2,
    "emergency": 2,
    "warning": 2,
    "alert": 2,
    "urgent": 2,
    "immediate": 2,
    "critical": 2,
    "death": 2,
    "listeria": 1,
    "salmonella": 1,
    "e. coli": 1,
    "undeclared": 1,
    "allergen": 1,
}

RECENCY_TIERS = (
    (6, 3),
    (24, 2),
    (72, 1),
)

RECALL_CLASS_BONUS = {
    "Class I": 4,
    "Class II": 2,
}


class UrgencyLevel(str, Enum):
    """Ordered urgency labels."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [UrgencyLevel.LOW, UrgencyLevel.MEDIUM, UrgencyLevel.HIGH, UrgencyLevel.CRITICAL]


@dataclass(frozen=True)
class UrgencyThresholds:
    """Minimum scores for each level above Low."""

    critical: int = 15
    high: int = 12
    medium: int = 8

    @classmethod
    def from_settings(cls) -> "UrgencyThresholds":
        return cls(
            critical=settings.urgency_critical_threshold,
            high=settings.urgency_high_threshold,
            medium=settings.urgency_medium_threshold,
        )

    def level_for(self, score: int) -> UrgencyLevel:
        if score >= self.critical:
            return UrgencyLevel.CRITICAL
        if score >= self.high:
            return UrgencyLevel.HIGH
        if score >= self.medium:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW


@dataclass(frozen=True)
class UrgencyProfile:
    """Per-source scoring parameters."""

    base_score: int = 5
    keyword_weights: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_KEYWORD_WEIGHTS))
    thresholds: Optional[UrgencyThresholds] = None


@dataclass(frozen=True)
class UrgencyContext:
    """Everything besides the text that feeds the score."""

    profile: UrgencyProfile = field(default_factory=UrgencyProfile)
    published_at: Optional[datetime] = None
    recall_class: str = ""


@dataclass(frozen=True)
class UrgencyResult:
    level: UrgencyLevel
    score: int


def keyword_score(text: str, weights: dict[str, int]) -> int:
    """Sum of weights for keywords present in ``text`` (each counted once)."""
    lowered = (text or "").lower()
    return sum(max(weight, 0) for keyword, weight in weights.items() if keyword.lower() in lowered)


def recency_bonus(published_at: Optional[datetime], now: datetime) -> int:
    if published_at is None:
        return 0
    hours_old = (now - published_at).total_seconds() / 3600
    if hours_old < 0:
        hours_old = 0
    for max_hours, bonus in RECENCY_TIERS:
        if hours_old < max_hours:
            return bonus
    return 0


def classify(text: str, context: UrgencyContext, now: Optional[datetime] = None) -> UrgencyResult:
    """
    Score an alert's urgency.

    Args:
        text: Title and summary
        context: Source profile, publication time and recall class
        now: Reference time for the recency bonus (defaults to utcnow)

    Returns:
        UrgencyResult with the clamped score and its level
    """
    if now is None:
        now = datetime.utcnow()

    profile = context.profile
    score = profile.base_score
    score += keyword_score(text, profile.keyword_weights)
    score += recency_bonus(context.published_at, now)
    score += RECALL_CLASS_BONUS.get(context.recall_class, 0)
    score = max(MIN_SCORE, min(MAX_SCORE, score))

    thresholds = profile.thresholds or UrgencyThresholds.from_settings()
    return UrgencyResult(level=thresholds.level_for(score), score=score)
