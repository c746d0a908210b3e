"""
Maintenance prediction refresh engine.

For each target vehicle:
    features -> baseline -> cache lookup by inputs hash
    -> (on miss, if a provider is configured) AI refinement
    -> reconcile -> replace the vehicle's prediction set

Entitlement and the daily budget are checked once per request before any
vehicle is processed. Provider failures fall back to the baseline for that
vehicle only, and a persistence failure skips that vehicle without touching
its siblings.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from automatenance.config import settings
from automatenance.exceptions import EntitlementError, PersistenceError
from automatenance.models.prediction import PredictionSource
from automatenance.predictions.baseline import baseline_predict
from automatenance.predictions.features import build_features, compute_inputs_hash
from automatenance.predictions.reconciler import choose_suggestions, reconcile
from automatenance.services.ai_cache import SuggestionCache, utcnow
from automatenance.services.identity import Caller
from automatenance.services.knowledge_base import fetch_snippets
from automatenance.services.prediction_repository import PredictionRepository, VehicleRepository
from automatenance.services.rate_limiter import RateLimiter
from automatenance.services.refinement_client import PredictionRefinementClient
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class VehicleRefreshState(str, enum.Enum):
    """Per-vehicle progress through one refresh."""

    PENDING = "pending"
    FEATURES_BUILT = "features_built"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    AI_OK = "ai_ok"
    AI_FAILED = "ai_failed"
    AI_SKIPPED = "ai_skipped"
    RECONCILED = "reconciled"
    VEHICLE_FAILED = "vehicle_failed"


@dataclass
class VehicleRefreshOutcome:
    """What happened to one vehicle."""

    vehicle_id: str
    states: List[VehicleRefreshState] = field(
        default_factory=lambda: [VehicleRefreshState.PENDING]
    )
    source: Optional[PredictionSource] = None
    inputs_hash: Optional[str] = None
    persisted: int = 0

    @property
    def state(self) -> VehicleRefreshState:
        return self.states[-1]

    def advance(self, state: VehicleRefreshState) -> None:
        self.states.append(state)


@dataclass
class RefreshResult:
    """Summary of a refresh request."""

    outcomes: List[VehicleRefreshOutcome] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return sum(o.persisted for o in self.outcomes)

    @property
    def failed(self) -> List[str]:
        return [o.vehicle_id for o in self.outcomes if o.state == VehicleRefreshState.VEHICLE_FAILED]


class PredictionRefreshEngine:
    """
    Orchestrates a prediction refresh for one caller.

    Example usage:
        engine = PredictionRefreshEngine(db, suggestion_cache, rate_limiter, client)
        result = await engine.refresh(caller, vehicle_id=None)
        print(result.updated)
    """

    def __init__(
        self,
        db: AsyncSession,
        suggestion_cache: SuggestionCache,
        rate_limiter: RateLimiter,
        refinement_client: Optional[PredictionRefinementClient] = None,
        clock: Callable[[], datetime] = utcnow,
        max_predictions: int = None,
    ):
        self.db = db
        self.vehicles = VehicleRepository(db)
        self.predictions = PredictionRepository(db)
        self.suggestion_cache = suggestion_cache
        self.rate_limiter = rate_limiter
        self.refinement_client = refinement_client
        self.clock = clock
        self.max_predictions = max_predictions or settings.MAX_PREDICTIONS_PER_VEHICLE

    async def refresh(self, caller: Caller, vehicle_id: str = None) -> RefreshResult:
        """
        Refresh predictions for all of the caller's vehicles, or just one.

        Args:
            caller: Authenticated caller with plan and AI entitlement
            vehicle_id: Optional vehicle to restrict the refresh to

        Returns:
            RefreshResult with per-vehicle outcomes

        Raises:
            EntitlementError: Caller's plan does not include AI predictions
            BudgetExceededError: Caller has no refresh budget left today
        """
        if not caller.ai_predictions:
            logger.info(f"Refresh denied for user {caller.user_id}: plan {caller.plan} not entitled")
            raise EntitlementError()

        await self.rate_limiter.acquire(caller.user_id, caller.plan)

        vehicles = await self.vehicles.list_for_user(caller.user_id, vehicle_id)
        result = RefreshResult()
        if not vehicles:
            logger.info(f"No vehicles to refresh for user {caller.user_id}")
            return result

        # Plain snapshots so a rollback on one vehicle cannot expire the others
        snapshots = [v.snapshot() for v in vehicles]
        records = await self.vehicles.records_by_vehicle(
            caller.user_id, [s["id"] for s in snapshots]
        )
        history = {
            vid: [
                {"id": r.id, "type": r.type, "date": r.date, "mileage": r.mileage}
                for r in rows
            ]
            for vid, rows in records.items()
        }

        for snapshot in snapshots:
            outcome = await self._refresh_vehicle(caller.user_id, snapshot, history[snapshot["id"]])
            result.outcomes.append(outcome)

        logger.info(
            f"Refresh complete for user {caller.user_id}: "
            f"{len(result.outcomes)} vehicle(s), {result.updated} prediction(s), "
            f"{len(result.failed)} failed"
        )
        return result

    async def _refresh_vehicle(self, user_id: str, vehicle: dict, events: List[dict]) -> VehicleRefreshOutcome:
        outcome = VehicleRefreshOutcome(vehicle_id=vehicle["id"])

        features = build_features(vehicle, events)
        baseline = baseline_predict(features, limit=self.max_predictions)
        inputs_hash = compute_inputs_hash(vehicle, features)
        outcome.inputs_hash = inputs_hash
        outcome.advance(VehicleRefreshState.FEATURES_BUILT)

        ai_suggestions = await self.suggestion_cache.lookup(vehicle["id"], inputs_hash, user_id)
        if ai_suggestions is not None:
            outcome.advance(VehicleRefreshState.CACHE_HIT)
        else:
            outcome.advance(VehicleRefreshState.CACHE_MISS)
            if self.refinement_client is None:
                outcome.advance(VehicleRefreshState.AI_SKIPPED)
            else:
                snippets = await fetch_snippets(
                    self.db, vehicle["make"], vehicle["model"], vehicle["year"]
                )
                ai_suggestions = await self.refinement_client.refine(
                    vehicle, features, baseline, snippets
                )
                if ai_suggestions is None:
                    outcome.advance(VehicleRefreshState.AI_FAILED)
                else:
                    outcome.advance(VehicleRefreshState.AI_OK)
                    await self.suggestion_cache.store(
                        vehicle["id"], inputs_hash, user_id, ai_suggestions
                    )

        chosen, source = choose_suggestions(ai_suggestions, baseline, self.max_predictions)
        outcome.source = source
        rows = reconcile(
            chosen,
            source,
            features,
            inputs_hash,
            user_id=user_id,
            vehicle_id=vehicle["id"],
            today=self.clock().date(),
        )

        try:
            outcome.persisted = await self.predictions.replace_all(user_id, vehicle["id"], rows)
        except PersistenceError as e:
            logger.error(f"Vehicle {vehicle['id']} skipped: {e}")
            outcome.advance(VehicleRefreshState.VEHICLE_FAILED)
            return outcome

        outcome.advance(VehicleRefreshState.RECONCILED)
        logger.info(
            f"Vehicle {vehicle['id']} reconciled: {outcome.persisted} prediction(s) "
            f"from {source.value} ({' -> '.join(s.value for s in outcome.states)})"
        )
        return outcome
