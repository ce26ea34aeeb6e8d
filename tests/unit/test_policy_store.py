"""
Unit tests for the Policy Store.

Tests cover:
- Create/get/update/delete
- Tenant isolation and priority ordering
- Rule validation at creation and update time
- Statistics
- Concurrent writers and readers
"""

import threading

import pytest

from warden.errors import ConfigurationError, InvalidConditionError, InvalidRuleError
from warden.policy import PolicyStore
from warden.schema import PolicyRule

READ_DOCS = {
    "effect": "allow",
    "actors": [{"type": "user", "pattern": "*"}],
    "resources": ["doc:*"],
    "actions": ["read"],
}


# =============================================================================
# CRUD Tests
# =============================================================================


class TestCreate:
    """Tests for policy creation."""

    def test_create_assigns_id_and_defaults(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        assert policy.id
        assert policy.tenant_id == "acme"
        assert policy.priority == 0
        assert policy.enabled is True
        assert policy.created_at.tzinfo is not None
        assert isinstance(policy.rules[0], PolicyRule)

    def test_ids_are_unique(self, store: PolicyStore) -> None:
        ids = {store.create("acme", f"p{i}", [READ_DOCS]).id for i in range(20)}
        assert len(ids) == 20

    def test_get_returns_created_policy(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])
        assert store.get(policy.id) == policy

    def test_get_unknown_returns_none(self, store: PolicyStore) -> None:
        assert store.get("missing") is None

    def test_policy_with_no_rules_is_allowed(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Empty", [])
        assert policy.rules == []


class TestValidation:
    """Malformed rules are rejected when the policy is built."""

    def test_unknown_operator(self, store: PolicyStore) -> None:
        rule = {**READ_DOCS, "conditions": [{"field": "x", "operator": "regex", "value": "a"}]}

        with pytest.raises(InvalidConditionError) as exc_info:
            store.create("acme", "Bad", [rule])

        assert exc_info.value.operator == "regex"
        assert len(store) == 0

    def test_in_requires_list(self, store: PolicyStore) -> None:
        rule = {**READ_DOCS, "conditions": [{"field": "x", "operator": "in", "value": "a"}]}

        with pytest.raises(InvalidRuleError):
            store.create("acme", "Bad", [rule])

    def test_gt_requires_number(self, store: PolicyStore) -> None:
        rule = {**READ_DOCS, "conditions": [{"field": "x", "operator": "gt", "value": "5"}]}

        with pytest.raises(InvalidRuleError):
            store.create("acme", "Bad", [rule])

    def test_unknown_action(self, store: PolicyStore) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            store.create("acme", "Bad", [{**READ_DOCS, "actions": ["fly"]}])

        assert exc_info.value.rule_index == 0

    def test_empty_actor_list(self, store: PolicyStore) -> None:
        with pytest.raises(ConfigurationError):
            store.create("acme", "Bad", [{**READ_DOCS, "actors": []}])

    def test_error_reports_rule_position(self, store: PolicyStore) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            store.create("acme", "Bad", [READ_DOCS, {**READ_DOCS, "effect": "maybe"}])

        assert exc_info.value.rule_index == 1
        assert "rule 2" in exc_info.value.message

    def test_non_list_conditions(self, store: PolicyStore) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            store.create("acme", "Bad", [{**READ_DOCS, "conditions": 5}])

        assert exc_info.value.rule_index == 0
        assert len(store) == 0

    @pytest.mark.parametrize("rules", [None, 5, "rules", READ_DOCS])
    def test_rules_must_be_a_list(self, store: PolicyStore, rules) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            store.create("acme", "Bad", rules)

        assert exc_info.value.field_name == "rules"
        assert len(store) == 0


class TestUpdate:
    """Tests for policy updates."""

    def test_update_mutable_fields(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        updated = store.update(policy.id, name="Doc readers", priority=5)

        assert updated is not None
        assert updated.name == "Doc readers"
        assert updated.priority == 5
        assert updated.id == policy.id
        assert updated.created_at == policy.created_at
        assert store.get(policy.id) == updated

    def test_update_unknown_returns_none(self, store: PolicyStore) -> None:
        assert store.update("missing", name="x") is None

    @pytest.mark.parametrize("field", ["id", "tenant_id", "created_at"])
    def test_identity_fields_are_immutable(self, store: PolicyStore, field: str) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        with pytest.raises(ConfigurationError):
            store.update(policy.id, **{field: "other"})

        assert store.get(policy.id) == policy

    def test_unknown_field_rejected(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        with pytest.raises(ConfigurationError):
            store.update(policy.id, colour="blue")

    def test_update_rules_revalidates(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        with pytest.raises(ConfigurationError):
            store.update(policy.id, rules=[{**READ_DOCS, "resources": []}])

        assert store.get(policy.id).rules == policy.rules

    def test_update_rules_none_rejected(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        with pytest.raises(ConfigurationError):
            store.update(policy.id, rules=None)

        assert store.get(policy.id) == policy

    def test_enable_disable(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        assert store.disable(policy.id).enabled is False
        assert store.list_enabled("acme") == []
        assert store.enable(policy.id).enabled is True
        assert [p.id for p in store.list_enabled("acme")] == [policy.id]


class TestDelete:
    """Tests for policy deletion."""

    def test_delete_removes_from_tenant(self, store: PolicyStore) -> None:
        policy = store.create("acme", "Readers", [READ_DOCS])

        assert store.delete(policy.id) is True
        assert store.get(policy.id) is None
        assert store.list_policies("acme") == []
        assert store.tenants() == []

    def test_delete_unknown_returns_false(self, store: PolicyStore) -> None:
        assert store.delete("missing") is False


# =============================================================================
# Listing Tests
# =============================================================================


class TestListing:
    """Tests for tenant listing and ordering."""

    def test_priority_descending(self, store: PolicyStore) -> None:
        low = store.create("acme", "low", [READ_DOCS], priority=1)
        high = store.create("acme", "high", [READ_DOCS], priority=100)
        mid = store.create("acme", "mid", [READ_DOCS], priority=50)

        assert [p.id for p in store.list_policies("acme")] == [high.id, mid.id, low.id]

    def test_ties_keep_creation_order(self, store: PolicyStore) -> None:
        first = store.create("acme", "first", [READ_DOCS], priority=10)
        second = store.create("acme", "second", [READ_DOCS], priority=10)
        third = store.create("acme", "third", [READ_DOCS], priority=10)

        assert [p.id for p in store.list_policies("acme")] == [first.id, second.id, third.id]

    def test_update_keeps_tie_position(self, store: PolicyStore) -> None:
        first = store.create("acme", "first", [READ_DOCS], priority=10)
        second = store.create("acme", "second", [READ_DOCS], priority=10)

        store.update(first.id, description="edited")

        assert [p.id for p in store.list_policies("acme")] == [first.id, second.id]

    def test_tenants_are_isolated(self, store: PolicyStore) -> None:
        store.create("acme", "a", [READ_DOCS])
        store.create("globex", "g", [READ_DOCS])

        assert [p.name for p in store.list_policies("acme")] == ["a"]
        assert [p.name for p in store.list_policies("globex")] == ["g"]
        assert store.list_policies("initech") == []
        assert sorted(store.tenants()) == ["acme", "globex"]

    def test_list_is_a_snapshot(self, store: PolicyStore) -> None:
        store.create("acme", "a", [READ_DOCS])
        listed = store.list_policies("acme")

        store.create("acme", "b", [READ_DOCS])

        assert len(listed) == 1


class TestStats:
    """Tests for store statistics."""

    def test_stats(self, store: PolicyStore) -> None:
        store.create("acme", "a", [READ_DOCS])
        store.create("acme", "b", [READ_DOCS], enabled=False)
        store.create("globex", "g", [READ_DOCS])

        stats = store.get_stats()

        assert stats.total_policies == 3
        assert stats.enabled_policies == 2
        assert stats.policies_by_tenant == {"acme": 2, "globex": 1}


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    """Concurrent writers and readers against one store."""

    def test_parallel_create_update_delete(self, store: PolicyStore) -> None:
        keep = [store.create("acme", f"keep-{i}", [READ_DOCS], priority=i) for i in range(5)]
        errors: list[BaseException] = []
        start = threading.Barrier(8)

        def writer(worker: int) -> None:
            try:
                start.wait()
                for i in range(25):
                    policy = store.create("acme", f"w{worker}-{i}", [READ_DOCS], priority=i % 3)
                    store.update(policy.id, description="touched")
                    if i % 2:
                        store.delete(policy.id)
            except BaseException as e:
                errors.append(e)

        def reader() -> None:
            try:
                start.wait()
                for _ in range(100):
                    listed = store.list_enabled("acme")
                    priorities = [p.priority for p in listed]
                    assert priorities == sorted(priorities, reverse=True)
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(6)]
        threads += [threading.Thread(target=reader) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        # Each writer keeps the 13 even-numbered policies it created
        assert len(store) == len(keep) + 6 * 13
        assert store.get_stats().policies_by_tenant == {"acme": len(keep) + 6 * 13}
        listed = store.list_policies("acme")
        assert len({p.id for p in listed}) == len(listed)
        assert all(store.get(p.id) == p for p in keep)
