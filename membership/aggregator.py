"""
Membership aggregator

Per-club athlete/coach counts from group rosters fetched over an
unreliable collaborator.

Each attempt fetches every club's groups concurrently and waits for all of
them to settle. Only a fully successful batch is normalized; if any fetch
fails the whole batch is retried after 1s, 2s, 4s, ... When the attempts
run out the result is an empty dict, which callers must read as "unknown",
not as "zero members".
"""
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from loguru import logger

from billing.models import MemberCount, reference_id
from club_api.config import billing_config

from .roster import RosterSummary

FetchGroups = Callable[[str], Awaitable[List[Any]]]


class AggregationOutcome(str, Enum):
    """How the last aggregate() call ended"""
    COMPLETE = "complete"
    EXHAUSTED = "exhausted"     # every attempt had a failed fetch
    ABANDONED = "abandoned"     # caller lost interest


class MembershipAggregator:
    """Resilient per-club membership counter"""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_attempts = max_attempts if max_attempts is not None else billing_config.aggregation_max_attempts
        self.base_delay = base_delay if base_delay is not None else billing_config.aggregation_base_delay
        self._sleep = sleep
        self.last_outcome: Optional[AggregationOutcome] = None
        self.last_attempts = 0

    def backoff(self, attempt: int) -> float:
        """Delay after failed attempt n (1-based)"""
        return self.base_delay * (2 ** (attempt - 1))

    async def aggregate(
        self,
        clubs: Iterable[Any],
        fetch_groups: FetchGroups,
        is_interested: Callable[[], bool] = lambda: True,
    ) -> Dict[str, MemberCount]:
        """
        Count distinct athletes and coaches per club

        Args:
            clubs: Club models or raw club payloads
            fetch_groups: async club_id -> group payloads
            is_interested: checked before every attempt and before returning;
                once False the run stops and results are discarded

        Returns:
            {club_id: MemberCount}, or {} when exhausted/abandoned
        """
        club_ids = [cid for cid in (self._club_id(c) for c in clubs) if cid]
        self.last_attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            if not is_interested():
                break
            self.last_attempts = attempt

            results = await asyncio.gather(
                *(fetch_groups(club_id) for club_id in club_ids),
                return_exceptions=True,
            )
            failures = [
                (club_id, r) for club_id, r in zip(club_ids, results) if isinstance(r, BaseException)
            ]

            if not failures:
                counts = {
                    club_id: self._count(groups)
                    for club_id, groups in zip(club_ids, results)
                }
                if not is_interested():
                    break
                self.last_outcome = AggregationOutcome.COMPLETE
                logger.info(f"Membership aggregated for {len(counts)} clubs (attempt {attempt})")
                return counts

            for club_id, error in failures:
                logger.debug(f"groups of club {club_id} failed: {error}")

            if attempt == self.max_attempts:
                break

            wait_time = self.backoff(attempt)
            logger.warning(
                f"{len(failures)}/{len(club_ids)} group fetches failed, "
                f"retrying all in {wait_time}s ({attempt}/{self.max_attempts})"
            )
            await self._sleep(wait_time)

        if not is_interested():
            self.last_outcome = AggregationOutcome.ABANDONED
            logger.info("Membership aggregation abandoned")
        else:
            self.last_outcome = AggregationOutcome.EXHAUSTED
            logger.warning(f"Membership aggregation gave up after {self.last_attempts} attempts")
        return {}

    @staticmethod
    def _club_id(club: Any) -> Optional[str]:
        if isinstance(club, dict):
            return reference_id(club)
        return reference_id(getattr(club, "id", club))

    @staticmethod
    def _count(groups: Optional[List[Any]]) -> MemberCount:
        summary = RosterSummary.from_groups(groups or [])
        return MemberCount(athletes=len(summary.athletes), coaches=len(summary.coaches))
