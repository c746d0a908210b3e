"""Per-user daily budget for prediction refresh requests."""

import logging
from typing import Callable, Dict

from automatenance.config import settings
from automatenance.exceptions import BudgetExceededError
from automatenance.services.ai_cache import RefreshCallCounter

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Gate refresh requests on a per-plan daily call budget.

    One request consumes one unit no matter how many vehicles it touches.
    The unit is recorded before any AI work starts. Increments are plain
    upserts, so two concurrent requests from the same user can overshoot the
    budget by one.
    """

    def __init__(
        self,
        counter: RefreshCallCounter,
        budgets: Dict[str, int] = None,
        today: Callable = None,
    ):
        self.counter = counter
        self.budgets = budgets if budgets is not None else settings.PLAN_DAILY_REFRESH_BUDGETS
        self.today = today or (lambda: counter.backend.clock().date())

    def budget_for(self, plan: str) -> int:
        return self.budgets.get(plan, 0)

    async def acquire(self, user_id: str, plan: str) -> int:
        """
        Consume one unit of today's budget.

        Args:
            user_id: Caller identity
            plan: Caller's plan tier

        Returns:
            The new call count for today

        Raises:
            BudgetExceededError: If the plan's budget is already used up
        """
        day = self.today()
        calls = await self.counter.current(user_id, day)
        budget = self.budget_for(plan)

        if calls >= budget:
            logger.warning(
                f"Refresh budget exhausted for user {user_id} "
                f"(plan={plan}, calls={calls}, budget={budget})"
            )
            raise BudgetExceededError()

        await self.counter.record(user_id, day, calls + 1)
        logger.info(f"Refresh budget granted for user {user_id}: {calls + 1}/{budget} on {day}")
        return calls + 1
