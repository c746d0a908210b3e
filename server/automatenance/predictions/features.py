"""
Feature extraction from maintenance history.

Turns a vehicle's raw maintenance events into per-type service interval
statistics. Pure functions only; no I/O.
"""

import hashlib
import json
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional


@dataclass
class FeatureSet:
    """Per-vehicle service statistics keyed by lower-cased maintenance type."""

    last_mileage: Optional[int] = None
    avg_days_by_type: Dict[str, Optional[int]] = field(default_factory=dict)
    avg_miles_by_type: Dict[str, Optional[int]] = field(default_factory=dict)
    last_date_by_type: Dict[str, Optional[date]] = field(default_factory=dict)
    last_mileage_by_type: Dict[str, Optional[int]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form (dates as ISO strings)."""
        data = asdict(self)
        data["last_date_by_type"] = {
            t: d.isoformat() if d else None for t, d in self.last_date_by_type.items()
        }
        return data


def parse_event_date(value: Any) -> Optional[date]:
    """Coerce an event date into a ``date``; malformed values become None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _field(event: Any, name: str) -> Any:
    if isinstance(event, Mapping):
        return event.get(name)
    return getattr(event, name, None)


def _mileage(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _average(values: List[int]) -> Optional[int]:
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def build_features(vehicle: Any, events: Iterable[Any]) -> FeatureSet:
    """
    Derive service interval statistics for one vehicle.

    Events are grouped by ``type.lower()``. Within a group they are ordered by
    date (ties broken by mileage then id), so the result does not depend on
    the order events are supplied in. Events with an unparseable date are
    kept in the group but excluded from interval math.

    Args:
        vehicle: Vehicle row or mapping; only ``mileage`` is read
        events: Maintenance events (rows or mappings) with type, date, mileage, id

    Returns:
        FeatureSet with rounded average day/mile intervals per type
    """
    features = FeatureSet(last_mileage=_mileage(_field(vehicle, "mileage")))

    groups: Dict[str, List[Dict[str, Any]]] = {}
    for event in events:
        kind = str(_field(event, "type") or "").lower()
        groups.setdefault(kind, []).append(
            {
                "id": str(_field(event, "id") or ""),
                "date": parse_event_date(_field(event, "date")),
                "mileage": _mileage(_field(event, "mileage")),
            }
        )

    for kind in sorted(groups):
        dated = sorted(
            (e for e in groups[kind] if e["date"] is not None),
            key=lambda e: (
                e["date"],
                e["mileage"] is None,
                e["mileage"] or 0,
                e["id"],
            ),
        )

        day_deltas: List[int] = []
        mile_deltas: List[int] = []
        for prev, cur in zip(dated, dated[1:]):
            day_deltas.append((cur["date"] - prev["date"]).days)
            if prev["mileage"] is not None and cur["mileage"] is not None:
                mile_deltas.append(cur["mileage"] - prev["mileage"])

        features.avg_days_by_type[kind] = _average(day_deltas)
        features.avg_miles_by_type[kind] = _average(mile_deltas)

        last = dated[-1] if dated else None
        features.last_date_by_type[kind] = last["date"] if last else None
        features.last_mileage_by_type[kind] = last["mileage"] if last else None

    return features


def compute_inputs_hash(vehicle_snapshot: Mapping[str, Any], features: FeatureSet) -> str:
    """SHA-256 of the canonical JSON of vehicle snapshot plus features."""
    payload = json.dumps(
        {"v": dict(vehicle_snapshot), "features": features.to_dict()},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
