"""
craftlink.engine.role_sync — Role → Group Mapping
==================================================

Pure functions, no Discord I/O, no DB I/O.

A guild maps Discord roles onto in-game permission groups.  Given the roles
a member holds right now, :func:`target_groups` says which groups the player
*should* be in and :func:`diff` compares that against the groups the game
server reports.  Only groups that appear in some enabled mapping are
"managed"; the game-server plugin leaves every other group alone.

    chat roles ──► target_groups ──► diff(current, target) ──► GroupDiff
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol


class MappingLike(Protocol):
    role_id: int | str
    group: str
    enabled: bool


@dataclass(frozen=True, slots=True)
class RoleRule:
    """Plain mapping row, for callers that don't hold ORM objects."""

    role_id: int | str
    group: str
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class GroupDiff:
    """Set difference between the groups a player has and should have."""

    to_add: frozenset[str]
    to_remove: frozenset[str]
    unchanged: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def target_groups(
    chat_roles: Iterable[int | str], mappings: Iterable[MappingLike]
) -> set[str]:
    """Groups granted by any enabled mapping whose role the member holds."""
    held = {str(r) for r in chat_roles}
    return {m.group for m in mappings if m.enabled and str(m.role_id) in held}


def managed_groups(mappings: Iterable[MappingLike]) -> set[str]:
    return {m.group for m in mappings if m.enabled}


def diff(current: Iterable[str], target: Iterable[str]) -> GroupDiff:
    """Compute ``to_add = target − current``, ``to_remove = current − target``.

    ``to_add`` and ``to_remove`` are always disjoint, and
    ``current − to_remove ∪ to_add == target``.
    """
    cur = set(current)
    tgt = set(target)
    return GroupDiff(
        to_add=frozenset(tgt - cur),
        to_remove=frozenset(cur - tgt),
        unchanged=frozenset(cur & tgt),
    )
