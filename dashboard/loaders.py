"""
Dashboard loaders

Fill a DashboardState from the club API. Collaborator failures are logged
and recorded as `last_error`; previously loaded state is left as it was.
"""
from typing import Dict, List, Optional

from loguru import logger

from billing.models import MemberCount, Registration
from club_api.client import ClubApiError
from membership.aggregator import AggregationOutcome, MembershipAggregator

from .store import DashboardState


class ClubMembersLoader:
    """Club list + per-club athlete/coach counts"""

    def __init__(self, api, aggregator: Optional[MembershipAggregator] = None):
        self.api = api
        self.aggregator = aggregator or MembershipAggregator()

    async def load(self, state: DashboardState) -> Dict[str, MemberCount]:
        if not state.is_open:
            return {}
        state.members_loading = True

        try:
            clubs = await self.api.list_clubs()
        except ClubApiError as e:
            logger.error(f"Club list failed: {e}")
            state.commit_error(f"Club list failed: {e}")
            return {}

        counts = await self.aggregator.aggregate(
            clubs,
            self.api.list_groups_by_club,
            is_interested=lambda: state.is_open,
        )
        known = self.aggregator.last_outcome == AggregationOutcome.COMPLETE

        if not state.commit_members(clubs, counts, known):
            logger.debug("Dashboard closed, member counts discarded")
        return counts


class UnpaidRegistrationsLoader:
    """Registrations of the assignment whose enrollment fee is unpaid"""

    def __init__(self, api):
        self.api = api

    async def load(self, state: DashboardState) -> List[Registration]:
        if not state.is_open:
            return []
        if not state.assignment_id:
            logger.warning("No active assignment, nothing to load")
            state.commit_unpaid([])
            return []

        state.unpaid_loading = True
        try:
            registrations = await self.api.list_unpaid_registrations_by_assignment(state.assignment_id)
        except ClubApiError as e:
            logger.error(f"Unpaid registrations failed: {e}")
            state.commit_error(f"Unpaid registrations failed: {e}")
            return []

        unpaid = [r for r in registrations if not r.is_enrollment_paid]
        if len(unpaid) != len(registrations):
            logger.warning(f"{len(registrations) - len(unpaid)} paid registrations in unpaid listing dropped")

        state.commit_unpaid(unpaid)
        return unpaid
