"""Deterministic baseline forecast from historical service intervals."""

from datetime import timedelta
from typing import List

from automatenance.models.prediction import Urgency
from automatenance.predictions.features import FeatureSet
from automatenance.predictions.suggestions import Suggestion

BASELINE_CONFIDENCE = 60
MAX_SUGGESTIONS = 6


def nice_title(kind: str) -> str:
    """Friendly title for a free-text maintenance type."""
    s = kind.lower()
    if "oil" in s:
        return "Oil Change"
    if "brake" in s:
        return "Brake Service"
    if "tire" in s and "rotat" in s:
        return "Tire Rotation"
    if "air" in s and "filter" in s:
        return "Air Filter Replacement"
    return s.strip().title() or "Maintenance"


def baseline_predict(features: FeatureSet, limit: int = MAX_SUGGESTIONS) -> List[Suggestion]:
    """
    Project the next service for every type with a known interval.

    Types with fewer than two dated events (no average) or without a last
    service date are skipped. The predicted mileage is only set when both the
    last mileage and the average mileage interval are known.
    """
    out: List[Suggestion] = []
    for kind, avg_days in features.avg_days_by_type.items():
        last_date = features.last_date_by_type.get(kind)
        if not avg_days or last_date is None:
            continue

        last_miles = features.last_mileage_by_type.get(kind)
        avg_miles = features.avg_miles_by_type.get(kind)
        predicted_mileage = None
        if last_miles is not None and avg_miles is not None:
            predicted_mileage = last_miles + avg_miles

        out.append(
            Suggestion(
                title=nice_title(kind),
                description=f"Based on your history, this typically occurs every ~{avg_days} days.",
                predicted_date=last_date + timedelta(days=avg_days),
                predicted_mileage=predicted_mileage,
                confidence=BASELINE_CONFIDENCE,
                urgency=Urgency.MEDIUM,
            )
        )

    return out[:limit]
