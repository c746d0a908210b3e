"""
Turn the chosen suggestion list into persistable prediction rows.

Confidence is clamped, urgency is kept or derived, and each row records its
provenance so a forecast can be audited later.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from automatenance.models.prediction import PredictionSource, Urgency
from automatenance.predictions.features import FeatureSet
from automatenance.predictions.suggestions import (
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    Suggestion,
    clamp_int,
)

DEFAULT_CONFIDENCE = 60
MEDIUM_CONFIDENCE_THRESHOLD = 75


def compute_urgency(predicted_date: Optional[date], confidence: int, today: date) -> Urgency:
    """Due today or earlier is high; otherwise confidence decides medium vs low."""
    if predicted_date is not None and predicted_date <= today:
        return Urgency.HIGH
    if confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
        return Urgency.MEDIUM
    return Urgency.LOW


def choose_suggestions(
    ai_suggestions: Optional[List[Suggestion]],
    baseline: List[Suggestion],
    limit: int,
) -> Tuple[List[Suggestion], PredictionSource]:
    """AI list wins only when it is non-empty."""
    if ai_suggestions:
        return ai_suggestions[:limit], PredictionSource.AI
    return baseline[:limit], PredictionSource.LOCAL


def reconcile(
    suggestions: List[Suggestion],
    source: PredictionSource,
    features: FeatureSet,
    inputs_hash: str,
    user_id: str,
    vehicle_id: str,
    today: date,
) -> List[Dict[str, Any]]:
    """
    Build prediction row values for one vehicle.

    Args:
        suggestions: Chosen suggestions (already capped)
        source: Whether they came from the AI or the local baseline
        features: FeatureSet snapshot stored in ``basis``
        inputs_hash: Content hash of the inputs
        user_id: Owner of the vehicle
        vehicle_id: Vehicle the predictions belong to
        today: Reference date for urgency derivation

    Returns:
        List of column dicts for MaintenancePrediction
    """
    feature_snapshot = features.to_dict()
    rows = []
    for s in suggestions:
        raw_confidence = s.confidence if s.confidence is not None else DEFAULT_CONFIDENCE
        confidence = clamp_int(raw_confidence, MIN_CONFIDENCE, MAX_CONFIDENCE)
        urgency = s.urgency or compute_urgency(s.predicted_date, confidence, today)

        rows.append(
            {
                "user_id": user_id,
                "vehicle_id": vehicle_id,
                "title": s.title,
                "description": s.description,
                "predicted_date": s.predicted_date,
                "predicted_mileage": s.predicted_mileage,
                "confidence": confidence,
                "urgency": urgency.value,
                "basis": {
                    "source": source.value,
                    "features": feature_snapshot,
                    "rag_refs": list(s.refs),
                },
                "inputs_hash": inputs_hash,
            }
        )
    return rows
