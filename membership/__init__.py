"""
Club membership counting over legacy group rosters
"""
from .aggregator import MembershipAggregator, AggregationOutcome
from .roster import (
    MembershipRecord,
    AthleteIdList,
    AthleteEntryList,
    CoachList,
    LegacyMemberList,
    ROSTER_FIELDS,
    RosterSummary,
    extract_memberships,
)

__all__ = [
    "MembershipAggregator",
    "AggregationOutcome",
    "MembershipRecord",
    "AthleteIdList",
    "AthleteEntryList",
    "CoachList",
    "LegacyMemberList",
    "ROSTER_FIELDS",
    "RosterSummary",
    "extract_memberships",
]
