# src/app/services/quota_service.py
"""
Quota management service.
Handles monthly clip-generation limits per subscription tier.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from src.app.domain.errors import QuotaLimitReachedError
from src.app.domain.models import MONTHLY_CLIP_LIMITS, UNLIMITED, QuotaCheck, QuotaCounter, SubscriptionTier
from src.app.infra.db.base import QuotaRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def needs_reset(counter: QuotaCounter, now: datetime) -> bool:
    """True when the last reset happened in a different calendar month."""
    last = counter.last_reset_date
    if last is None:
        return True
    return (last.year, last.month) != (now.year, now.month)


class QuotaService:
    """
    Service for managing smart-clip quotas.

    Responsibilities:
    - Roll the monthly counter over when a new month starts
    - Check whether a user may generate more clips
    - Record generated clips against the counter
    """

    def __init__(
        self,
        repository: QuotaRepository,
        clock: Callable[[], datetime] = _utcnow,
        limits: Optional[dict[SubscriptionTier, int]] = None,
    ):
        self._repo = repository
        self._clock = clock
        self.limits = dict(limits or MONTHLY_CLIP_LIMITS)

    def _current_counter(self, user_id: str) -> QuotaCounter:
        counter = self._repo.get_counter(user_id)
        now = self._clock()
        if needs_reset(counter, now):
            self._repo.reset_counter(user_id, now)
            logger.info(
                "quota.monthly_reset user=%s previous=%d",
                user_id,
                counter.clips_generated_this_month,
            )
            counter = QuotaCounter(user_id=user_id, clips_generated_this_month=0, last_reset_date=now)
        return counter

    def check(self, user_id: str) -> QuotaCheck:
        """
        Evaluate the user's quota, applying a pending monthly reset first.

        Args:
            user_id: The user to check

        Returns:
            QuotaCheck with the tier, limit and current count
        """
        counter = self._current_counter(user_id)
        tier = self._repo.get_tier(user_id)
        limit = self.limits.get(tier, self.limits[SubscriptionTier.FREE])
        used = counter.clips_generated_this_month
        allowed = limit == UNLIMITED or used < limit

        return QuotaCheck(allowed=allowed, tier=tier, monthly_limit=limit, clips_generated=used)

    def ensure_allowed(self, user_id: str) -> QuotaCheck:
        """
        Raises:
            QuotaLimitReachedError: If the monthly limit is used up
        """
        result = self.check(user_id)
        if not result.allowed:
            logger.info(
                "quota.limit_reached user=%s tier=%s limit=%d",
                user_id,
                result.tier.value,
                result.monthly_limit,
            )
            raise QuotaLimitReachedError(
                tier=result.tier.value,
                monthly_limit=result.monthly_limit,
                clips_generated=result.clips_generated,
            )
        return result

    def record_usage(self, user_id: str, clip_count: int) -> int:
        """
        Add ``clip_count`` generated clips to this month's counter.

        Returns:
            Remaining clips this month, -1 when unlimited
        """
        counter = self._current_counter(user_id)
        total = counter.clips_generated_this_month + max(0, clip_count)
        self._repo.set_clips_generated(user_id, total)

        tier = self._repo.get_tier(user_id)
        limit = self.limits.get(tier, self.limits[SubscriptionTier.FREE])
        remaining = QuotaCheck(allowed=True, tier=tier, monthly_limit=limit, clips_generated=total).remaining

        logger.info("quota.recorded user=%s added=%d total=%d remaining=%d", user_id, clip_count, total, remaining)
        return remaining
