"""
Participant roles and the pure rules built on their ranking.

    viewer (1) < member (2) < admin (3) < owner (4)

Nothing here touches the store, so the rules can be checked in isolation.
"""

from enum import Enum
from types import MappingProxyType
from typing import Optional


class ParticipantRole(str, Enum):
    VIEWER = "viewer"
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]

    # Ordering is by rank, never by declaration order or string value
    def __lt__(self, other):
        if not isinstance(other, ParticipantRole):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ParticipantRole):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ParticipantRole):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ParticipantRole):
            return NotImplemented
        return self.rank >= other.rank

    def __str__(self) -> str:
        return self.value


ROLE_RANK = MappingProxyType({
    ParticipantRole.VIEWER: 1,
    ParticipantRole.MEMBER: 2,
    ParticipantRole.ADMIN: 3,
    ParticipantRole.OWNER: 4,
})


def check_rank_table(rank_table) -> None:
    """Raise ValueError unless every role has a distinct rank and owner alone ranks highest"""
    if set(rank_table) != set(ParticipantRole):
        raise ValueError("Rank table must cover every participant role")
    if len(set(rank_table.values())) != len(rank_table):
        raise ValueError("Participant role ranks must be distinct")
    if max(rank_table, key=rank_table.__getitem__) is not ParticipantRole.OWNER:
        raise ValueError("Owner must rank above every other participant role")


check_rank_table(ROLE_RANK)

ELEVATED_ROLES = frozenset({ParticipantRole.ADMIN, ParticipantRole.OWNER})


def role_allows(role: Optional[ParticipantRole], required: ParticipantRole) -> bool:
    """True when a participant holding `role` meets `required`; non-participants never do"""
    if role is None:
        return False
    return role >= required


def decide_member_removal(operator_role: Optional[ParticipantRole], target_role: Optional[ParticipantRole]) -> bool:
    """
    Whether an operator may remove a target participant.

    Owners may remove anyone except another owner. Admins may only remove
    strictly lower ranks, so never another admin or the owner.
    """
    if operator_role is None or target_role is None:
        return False
    if operator_role < ParticipantRole.ADMIN:
        return False
    if operator_role == ParticipantRole.OWNER:
        return target_role != ParticipantRole.OWNER
    return operator_role > target_role


def decide_invite_role(inviter_role: Optional[ParticipantRole], invited_role: ParticipantRole) -> bool:
    """Admins may invite; inviting with admin or owner needs the inviter to be owner"""
    if not role_allows(inviter_role, ParticipantRole.ADMIN):
        return False
    if invited_role in ELEVATED_ROLES:
        return inviter_role == ParticipantRole.OWNER
    return True


def sort_by_rank(participants: list) -> list:
    """Rank descending, then joined_at ascending (input rows are dicts with role and joined_at)"""
    by_join = sorted(participants, key=lambda p: str(p.get("joined_at") or ""))
    return sorted(by_join, key=lambda p: ParticipantRole(p["role"]).rank, reverse=True)
