"""
Services package for the maintenance prediction engine.
"""

from .ai_cache import AiCacheStore, RefreshCallCounter, SuggestionCache
from .identity import AuthIdentityProvider, Caller, EntitlementService
from .prediction_repository import PredictionRepository, VehicleRepository
from .rate_limiter import RateLimiter
from .refinement_client import PredictionRefinementClient
from .refresh_engine import PredictionRefreshEngine, RefreshResult, VehicleRefreshState

__all__ = [
    "AiCacheStore",
    "SuggestionCache",
    "RefreshCallCounter",
    "AuthIdentityProvider",
    "Caller",
    "EntitlementService",
    "PredictionRepository",
    "VehicleRepository",
    "RateLimiter",
    "PredictionRefinementClient",
    "PredictionRefreshEngine",
    "RefreshResult",
    "VehicleRefreshState",
]
