"""Drop candidates that were notified recently."""

import logging
from datetime import timedelta
from typing import Callable, List, Optional

from api.models import ScoredMatch
from index.base import NotificationHistory, utcnow

logger = logging.getLogger(__name__)


class NotificationDeduplicator:
    def __init__(
        self,
        history: NotificationHistory,
        lookback_days: float = 7,
        clock: Callable = utcnow,
    ):
        self.history = history
        self.lookback = timedelta(days=lookback_days)
        self._clock = clock

    async def dedupe(
        self, matches: List[ScoredMatch], lookback: Optional[timedelta] = None
    ) -> List[ScoredMatch]:
        """
        Remove matches whose candidate was notified within the lookback window.

        Any notification counts, whichever opportunity it was about. Order of
        the remaining matches is preserved.
        """
        if not matches:
            return []

        since = self._clock() - (lookback or self.lookback)
        notified = await self.history.recent_recipients(
            [m.candidate_id for m in matches], since
        )
        kept = [m for m in matches if m.candidate_id not in notified]

        if len(kept) != len(matches):
            logger.info(
                f"Dedup removed {len(matches) - len(kept)} recently notified candidates"
            )
        return kept
