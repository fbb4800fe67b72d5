"""
Group roster normalization

Groups carry membership in several legacy shapes. Each shape is a tagged
MembershipRecord variant with its own adapter; ROSTER_FIELDS maps the raw
group field to the variant that reads it. Adding a shape means adding a
variant and registering its field, the aggregation loop stays untouched.

    athletes        -> AthleteIdList      ["a1", "a2"]
    athletes_added  -> AthleteEntryList   [{"athlete_id": "a1"}, {"athlete_id": {"_id": "a2"}}]
    coaches         -> CoachList          ["c1", {"_id": "c2"}]
    members         -> LegacyMemberList   ["m1"]  (counted as athlete AND coach)
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Type


def identifier(value: Any) -> Optional[str]:
    """Roster reference -> string id (falsy values are skipped)"""
    if not value:
        return None
    if isinstance(value, Mapping):
        return identifier(value.get("_id") or value.get("id"))
    return str(value)


@dataclass
class MembershipRecord:
    """Base variant; `kind` is the tag"""
    kind = "base"
    items: List[Any] = field(default_factory=list)

    def athlete_ids(self) -> Set[str]:
        return set()

    def coach_ids(self) -> Set[str]:
        return set()

    @staticmethod
    def _ids(values: Iterable[Any]) -> Set[str]:
        ids = set()
        for value in values:
            ident = identifier(value)
            if ident:
                ids.add(ident)
        return ids


@dataclass
class AthleteIdList(MembershipRecord):
    """Plain athlete id array"""
    kind = "athlete_ids"

    def athlete_ids(self) -> Set[str]:
        return self._ids(self.items)


@dataclass
class AthleteEntryList(MembershipRecord):
    """Membership entries with an athlete reference (plain id or embedded object)"""
    kind = "athlete_entries"

    def athlete_ids(self) -> Set[str]:
        refs = [entry.get("athlete_id") for entry in self.items if isinstance(entry, Mapping)]
        return self._ids(refs)


@dataclass
class CoachList(MembershipRecord):
    """Coach ids or coach objects"""
    kind = "coaches"

    def coach_ids(self) -> Set[str]:
        return self._ids(self.items)


@dataclass
class LegacyMemberList(MembershipRecord):
    """
    Generic members array

    The role of an entry is unknown, so every entry counts as both an
    athlete and a coach candidate.
    """
    kind = "legacy_members"

    def athlete_ids(self) -> Set[str]:
        return self._ids(self.items)

    def coach_ids(self) -> Set[str]:
        return self._ids(self.items)


ROSTER_FIELDS: Dict[str, Type[MembershipRecord]] = {
    "athletes": AthleteIdList,
    "athletes_added": AthleteEntryList,
    "coaches": CoachList,
    "members": LegacyMemberList,
}


def extract_memberships(group: Any) -> List[MembershipRecord]:
    """Typed membership records of one group payload"""
    if hasattr(group, "roster"):
        group = group.roster()
    if not isinstance(group, Mapping):
        return []

    records = []
    for field_name, variant in ROSTER_FIELDS.items():
        raw = group.get(field_name)
        if isinstance(raw, list):
            records.append(variant(items=raw))
    return records


@dataclass
class RosterSummary:
    """Deduplicated ids across any number of groups"""
    athletes: Set[str] = field(default_factory=set)
    coaches: Set[str] = field(default_factory=set)

    def add_group(self, group: Any) -> None:
        for record in extract_memberships(group):
            self.athletes |= record.athlete_ids()
            self.coaches |= record.coach_ids()

    @classmethod
    def from_groups(cls, groups: Iterable[Any]) -> "RosterSummary":
        summary = cls()
        for group in groups or []:
            summary.add_group(group)
        return summary
