"""FastAPI dependencies shared by the prediction routes."""

import logging
from datetime import datetime
from typing import Callable, Optional

from automatenance.exceptions import AuthError
from automatenance.services.ai_cache import AiCacheStore, utcnow
from automatenance.services.database import get_db
from automatenance.services.identity import AuthIdentityProvider, Caller, EntitlementService
from automatenance.services.redis_client import get_redis
from automatenance.services.refinement_client import (
    PredictionRefinementClient,
    create_refinement_client,
)
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_identity_provider: Optional[AuthIdentityProvider] = None
_refinement_client: Optional[PredictionRefinementClient] = None
_refinement_client_loaded = False


def get_identity_provider() -> AuthIdentityProvider:
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = AuthIdentityProvider()
    return _identity_provider


def get_refinement_client() -> Optional[PredictionRefinementClient]:
    """Shared refinement client; None when AI refinement is not configured."""
    global _refinement_client, _refinement_client_loaded
    if not _refinement_client_loaded:
        _refinement_client = create_refinement_client()
        _refinement_client_loaded = True
    return _refinement_client


def get_cache_store() -> AiCacheStore:
    return AiCacheStore(get_redis())


def get_clock() -> Callable[[], datetime]:
    """UTC clock used for cache freshness, budgets and urgency."""
    return utcnow


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: AuthIdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db),
) -> Caller:
    """
    Resolve the bearer token and the caller's entitlement.

    Raises:
        AuthError: If no token is supplied or the token is rejected
    """
    token = credentials.credentials if credentials else None
    user_id = await identity.resolve(token) if token else None
    if not user_id:
        raise AuthError()

    entitlement = await EntitlementService(db).for_user(user_id)
    return Caller(
        user_id=user_id,
        plan=entitlement.plan,
        ai_predictions=entitlement.ai_predictions,
    )
