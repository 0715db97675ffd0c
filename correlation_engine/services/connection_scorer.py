"""Relationship scoring for deduplicated candidates.

Each candidate is scored by the rule matching the strategy that found it:

    geographic      great-circle distance   < 10 km 0.90, < 30 km 0.70, < 100 km 0.50
    temporal        whole-day difference    < 3 d   0.85, < 7 d   0.70, < 30 d   0.50
    cross_category  shared tag count        >= 3    0.80, 2       0.60, 1        0.45

Strength starts at 0 and rules only ever raise it.  A candidate whose
``location_name`` equals the source's (ignoring case) then gets a flat
boost, capped at 1.0.  The result is rounded to two decimals and
candidates left at 0 are dropped.

Explanation text comes from the ``describe_*`` functions below: pure
functions of (band, metric) with no knowledge of the thresholds.
"""

from __future__ import annotations

import structlog

from correlation_engine.models.connection import Candidate, ConnectionKind, ScoredConnection
from correlation_engine.models.report import Report
from correlation_engine.utils.geo import day_difference, haversine_km

logger = structlog.get_logger(logger_name=__name__)

# (upper bound exclusive, strength, band)
_GEOGRAPHIC_BANDS: tuple[tuple[float, float, str], ...] = (
    (10.0, 0.90, "close"),
    (30.0, 0.70, "region"),
    (100.0, 0.50, "area"),
)
_TEMPORAL_BANDS: tuple[tuple[int, float, str], ...] = (
    (3, 0.85, "flap"),
    (7, 0.70, "week"),
    (30, 0.50, "month"),
)
# (minimum shared tags, strength)
_CROSS_CATEGORY_BANDS: tuple[tuple[int, float], ...] = (
    (3, 0.80),
    (2, 0.60),
    (1, 0.45),
)

_GEOGRAPHIC_NOTES = {
    "close": "Reports from the same area often share environmental factors that may explain clusters of sightings.",
    "region": "Geographic clustering is one of the strongest indicators of genuine anomalous activity.",
    "area": "Many famous paranormal hotspots span areas of 50-100km.",
}
_TEMPORAL_NOTES = {
    "flap": "Clusters of reports within days are called flaps - among the most studied patterns.",
}
_CROSS_CATEGORY_NOTE = (
    "Cross-phenomenon connections suggest deeper patterns that transcend traditional categorization."
)

_MAX_LISTED_TAGS = 3


# ---------------------------------------------------------------------------
# Explanation formatters
# ---------------------------------------------------------------------------


def describe_geographic(band: str, distance_km: float) -> str:
    """Explanation for a geographic match in *band* at *distance_km*."""
    km = round(distance_km)
    if band == "close":
        return f"These reports occurred within {km}km of each other"
    if band == "region":
        return f"Both reports come from the same region, roughly {km}km apart"
    return f"These reports are from the broader same area, about {km}km apart"


def describe_temporal(band: str, days: int) -> str:
    """Explanation for a temporal match in *band*, *days* apart."""
    if band == "flap":
        return f"These events occurred within {days} day(s) of each other"
    if band == "week":
        return "Both events happened within the same week"
    return "These events occurred within the same month"


def describe_cross_category(shared_tags: list[str]) -> str:
    """Explanation naming the tags two different-category reports share."""
    if len(shared_tags) >= _MAX_LISTED_TAGS:
        listed = ", ".join(shared_tags[:_MAX_LISTED_TAGS])
        return f"Different phenomenon types sharing {len(shared_tags)} characteristics: {listed}"
    if len(shared_tags) == 2:
        return f"Cross-category reports sharing traits: {', '.join(shared_tags)}"
    return f"Different categories with a shared characteristic: {shared_tags[0]}"


def describe_shared_location(explanation: str, location_name: str) -> str:
    """Append the shared place name to an explanation."""
    if not explanation:
        return f"Both reference: {location_name}"
    return f"{explanation}. Both reference: {location_name}"


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class ConnectionScorer:
    """Assigns kind, strength, explanation and note to candidates.

    Stateless apart from the configured location boost; safe to share
    between concurrent batch workers.
    """

    def __init__(self, location_boost: float = 0.15) -> None:
        self._location_boost = location_boost

    def score(self, source: Report, candidates: list[Candidate]) -> list[ScoredConnection]:
        """Score every candidate, keeping those with a positive strength.

        Output preserves candidate order; ranking happens at selection.
        """
        scored: list[ScoredConnection] = []
        for candidate in candidates:
            result = self.score_candidate(source, candidate)
            if result is not None:
                scored.append(result)
        return scored

    def score_candidate(self, source: Report, candidate: Candidate) -> ScoredConnection | None:
        """Score one candidate; ``None`` when no rule gives it any strength."""
        target = candidate.report
        strength = 0.0
        explanation = ""
        note: str | None = None

        if candidate.strategy is ConnectionKind.GEOGRAPHIC:
            rule = self._geographic(source, target)
        elif candidate.strategy is ConnectionKind.TEMPORAL:
            rule = self._temporal(source, target)
        else:
            rule = self._cross_category(source, target)

        if rule is not None:
            rule_strength, explanation, note = rule
            strength = max(strength, rule_strength)

        if source.shares_location_name(target):
            strength = min(1.0, strength + self._location_boost)
            explanation = describe_shared_location(explanation, source.location_name or "")

        strength = round(strength, 2)
        if strength <= 0:
            return None

        return ScoredConnection(
            target_id=target.id,
            kind=candidate.strategy,
            strength=strength,
            explanation=explanation,
            note=note,
        )

    @staticmethod
    def _geographic(source: Report, target: Report) -> tuple[float, str, str | None] | None:
        if source.coordinates is None or target.coordinates is None:
            return None
        distance = haversine_km(
            source.coordinates.latitude,
            source.coordinates.longitude,
            target.coordinates.latitude,
            target.coordinates.longitude,
        )
        for upper, strength, band in _GEOGRAPHIC_BANDS:
            if distance < upper:
                return strength, describe_geographic(band, distance), _GEOGRAPHIC_NOTES.get(band)
        return None

    @staticmethod
    def _temporal(source: Report, target: Report) -> tuple[float, str, str | None] | None:
        if source.event_date is None or target.event_date is None:
            return None
        days = day_difference(source.event_date, target.event_date)
        for upper, strength, band in _TEMPORAL_BANDS:
            if days < upper:
                return strength, describe_temporal(band, days), _TEMPORAL_NOTES.get(band)
        return None

    @staticmethod
    def _cross_category(source: Report, target: Report) -> tuple[float, str, str | None] | None:
        # Listed alphabetically; tag sets are unordered.
        shared = sorted(source.tags & target.tags)
        for minimum, strength in _CROSS_CATEGORY_BANDS:
            if len(shared) >= minimum:
                note = _CROSS_CATEGORY_NOTE if minimum >= _MAX_LISTED_TAGS else None
                return strength, describe_cross_category(shared), note
        return None
