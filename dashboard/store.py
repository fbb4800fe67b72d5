"""
Dashboard view state

An explicitly constructed container handed to the loaders that fill it.
`open()` starts a view session and `close()` ends it; results arriving
after close() are discarded by the loaders (cooperative cancellation, the
underlying requests are not cancelled).
"""
from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger

from billing.dates import utc_now
from billing.models import Club, MemberCount, Registration


class DashboardState:
    """State of one operator dashboard session"""

    def __init__(self, assignment_id: Optional[str] = None):
        self.assignment_id = assignment_id
        self._open = False
        self._reset()

    def _reset(self) -> None:
        self.clubs: List[Club] = []
        self.club_members: Dict[str, MemberCount] = {}
        self.members_loading = False
        self.members_known = False
        self.unpaid_registrations: List[Registration] = []
        self.unpaid_loading = False
        self.last_error: Optional[str] = None
        self.updated_at: Optional[datetime] = None

    # ==================== lifecycle ====================

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "DashboardState":
        self._reset()
        self._open = True
        logger.debug(f"Dashboard opened (assignment={self.assignment_id})")
        return self

    def close(self) -> None:
        self._open = False
        logger.debug(f"Dashboard closed (assignment={self.assignment_id})")

    async def __aenter__(self) -> "DashboardState":
        return self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ==================== commits ====================

    def commit_members(self, clubs: List[Club], counts: Dict[str, MemberCount], known: bool) -> bool:
        """Store aggregation results; returns False when the session is closed"""
        if not self._open:
            return False
        self.clubs = clubs
        self.club_members = counts
        self.members_known = known
        self.members_loading = False
        self.updated_at = utc_now()
        return True

    def commit_unpaid(self, registrations: List[Registration]) -> bool:
        if not self._open:
            return False
        self.unpaid_registrations = registrations
        self.unpaid_loading = False
        self.updated_at = utc_now()
        return True

    def commit_error(self, message: str) -> bool:
        if not self._open:
            return False
        self.last_error = message
        self.members_loading = False
        self.unpaid_loading = False
        return True

    @property
    def unpaid_count(self) -> int:
        return len(self.unpaid_registrations)

    def member_count(self, club_id: str) -> Optional[MemberCount]:
        """Counts of a club, None while unknown"""
        return self.club_members.get(club_id)
