"""
tests/test_role_sync_engine.py — Role → Group Mapping
======================================================
Pure-function tests for craftlink.engine.role_sync: no DB, no Discord.
"""

from __future__ import annotations

import pytest

from craftlink.engine.role_sync import (
    GroupDiff,
    RoleRule,
    diff,
    managed_groups,
    target_groups,
)


class TestTargetGroups:
    def test_enabled_mapping_grants_group(self):
        rules = [RoleRule(role_id="vip", group="vip-mc", enabled=True)]
        assert target_groups({"vip"}, rules) == {"vip-mc"}

    def test_disabled_mapping_grants_nothing(self):
        rules = [RoleRule(role_id="vip", group="vip-mc", enabled=False)]
        assert target_groups({"vip"}, rules) == set()

    def test_role_not_held(self):
        rules = [RoleRule(role_id="vip", group="vip-mc")]
        assert target_groups({"member"}, rules) == set()

    def test_duplicate_groups_collapse(self):
        rules = [
            RoleRule(role_id="1", group="trusted"),
            RoleRule(role_id="2", group="trusted"),
            RoleRule(role_id="3", group="builder"),
        ]
        assert target_groups({"1", "2", "3"}, rules) == {"trusted", "builder"}

    def test_integer_and_string_role_ids_match(self):
        rules = [RoleRule(role_id=123456789012345678, group="staff")]
        assert target_groups(["123456789012345678"], rules) == {"staff"}
        assert target_groups([123456789012345678], rules) == {"staff"}

    def test_one_role_maps_to_many_groups(self):
        rules = [
            RoleRule(role_id="mod", group="moderator"),
            RoleRule(role_id="mod", group="trusted"),
        ]
        assert target_groups({"mod"}, rules) == {"moderator", "trusted"}


class TestManagedGroups:
    def test_only_enabled_mappings_are_managed(self):
        rules = [
            RoleRule(role_id="1", group="vip"),
            RoleRule(role_id="2", group="legacy", enabled=False),
        ]
        assert managed_groups(rules) == {"vip"}


class TestDiff:
    def test_add_and_remove(self):
        result = diff({"a", "b"}, {"b", "c"})
        assert result.to_add == {"c"}
        assert result.to_remove == {"a"}
        assert result.unchanged == {"b"}
        assert not result.is_empty

    def test_identical_sets(self):
        groups = {"vip", "builder"}
        result = diff(groups, groups)
        assert result == GroupDiff(
            to_add=frozenset(), to_remove=frozenset(), unchanged=frozenset(groups)
        )
        assert result.is_empty

    def test_empty_inputs(self):
        assert diff([], []).is_empty

    @pytest.mark.parametrize(
        "current,target",
        [
            ({"a"}, set()),
            (set(), {"a"}),
            ({"a", "b", "c"}, {"c", "d"}),
            ({"x"}, {"x"}),
        ],
    )
    def test_diff_properties(self, current, target):
        result = diff(current, target)
        assert not (result.to_add & result.to_remove)
        assert result.unchanged == current & target
        assert (current - result.to_remove) | result.to_add == target
