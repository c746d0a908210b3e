"""
Caller identity and subscription entitlement.

Bearer tokens are verified against the auth server's user endpoint; the
plan comes from the caller's latest subscription row.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from automatenance.config import settings
from automatenance.models.subscription import Subscription
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

FREE_PLAN = "free"


@dataclass
class Entitlement:
    """What the caller's subscription allows."""

    plan: str = FREE_PLAN
    ai_predictions: bool = False


@dataclass
class Caller:
    """Authenticated caller with resolved entitlement."""

    user_id: str
    plan: str = FREE_PLAN
    ai_predictions: bool = False


class AuthIdentityProvider:
    """
    Resolves bearer tokens to user ids via ``GET {AUTH_SERVER_URL}/auth/v1/user``.

    Example usage:
        provider = AuthIdentityProvider()
        user_id = await provider.resolve(token)
    """

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.base_url = (base_url or settings.AUTH_SERVER_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.AUTH_API_KEY
        self.timeout = timeout or settings.AUTH_TIMEOUT_SECONDS
        self.transport = transport

    async def resolve(self, token: str) -> Optional[str]:
        """
        Verify a bearer token.

        Args:
            token: Raw bearer token

        Returns:
            User id, or None if the token is missing, rejected or unverifiable
        """
        if not token or not self.base_url:
            return None

        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Auth server request failed: {e}")
            return None

        if response.status_code != 200:
            logger.info(f"Auth server rejected token (HTTP {response.status_code})")
            return None

        try:
            user_id = response.json().get("id")
        except ValueError:
            logger.error("Auth server returned non-JSON user payload")
            return None

        return str(user_id) if user_id else None


class EntitlementService:
    """Reads the caller's latest subscription to decide plan and AI access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def for_user(self, user_id: str) -> Entitlement:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.updated_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        sub = result.scalar_one_or_none()

        if not sub:
            return Entitlement()

        entitled = sub.status == "active" and bool(sub.ai_predictions)
        return Entitlement(plan=sub.plan or FREE_PLAN, ai_predictions=entitled)
