"""Maintenance prediction endpoints."""

import logging
from datetime import date, datetime
from typing import Callable, Optional

from automatenance.exceptions import RefreshError
from automatenance.routes.dependencies import (
    get_cache_store,
    get_clock,
    get_current_caller,
    get_refinement_client,
)
from automatenance.services.ai_cache import AiCacheStore, RefreshCallCounter, SuggestionCache
from automatenance.services.database import get_db
from automatenance.services.identity import Caller
from automatenance.services.prediction_repository import PredictionRepository
from automatenance.services.rate_limiter import RateLimiter
from automatenance.services.refinement_client import PredictionRefinementClient
from automatenance.services.refresh_engine import PredictionRefreshEngine
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()


class RefreshRequest(BaseModel):
    """Optional scope for a refresh."""

    vehicleId: Optional[str] = None


def days_until_due(predicted_date: Optional[date], today: date) -> Optional[int]:
    if predicted_date is None:
        return None
    return (predicted_date - today).days


@router.post("/refresh")
async def refresh_predictions(
    payload: Optional[RefreshRequest] = None,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    cache_store: AiCacheStore = Depends(get_cache_store),
    refinement_client: Optional[PredictionRefinementClient] = Depends(get_refinement_client),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Rebuild maintenance predictions for the caller's vehicles.

    Body (optional):
        {"vehicleId": str}  # restrict the refresh to one vehicle

    Returns:
        {"ok": true, "updated": int} where ``updated`` counts persisted predictions

    Status codes:
        401 unauthenticated, 403 not entitled, 429 daily budget used,
        500 unexpected failure
    """
    vehicle_id = payload.vehicleId if payload else None
    engine = PredictionRefreshEngine(
        db,
        suggestion_cache=SuggestionCache(cache_store),
        rate_limiter=RateLimiter(RefreshCallCounter(cache_store)),
        refinement_client=refinement_client,
        clock=clock,
    )

    try:
        result = await engine.refresh(caller, vehicle_id=vehicle_id)
    except RefreshError:
        raise
    except Exception as e:
        logger.error(f"refresh-predictions error for user {caller.user_id}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Server error"})

    return {"ok": True, "updated": result.updated}


@router.get("")
async def list_predictions(
    vehicle_id: Optional[str] = Query(None),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    List the caller's persisted predictions, soonest first.

    Each item includes ``days_until_due`` relative to today (UTC).
    """
    today = clock().date()
    predictions = await PredictionRepository(db).list_for_user(caller.user_id, vehicle_id)

    return {
        "predictions": [
            {
                "id": p.id,
                "vehicle_id": p.vehicle_id,
                "title": p.title,
                "description": p.description,
                "predicted_date": p.predicted_date.isoformat() if p.predicted_date else None,
                "predicted_mileage": p.predicted_mileage,
                "confidence": p.confidence,
                "urgency": p.urgency,
                "source": (p.basis or {}).get("source"),
                "days_until_due": days_until_due(p.predicted_date, today),
            }
            for p in predictions
        ]
    }
