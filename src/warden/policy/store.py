"""
In-memory policy storage for Warden.

The PolicyStore owns every Policy record and a per-tenant index. It is
an explicit object: build one per process (or per tenant shard) and
hand it to the evaluator and the PermissionAPI.

Design Principles:
    - Tenant isolation: list_policies() only returns the tenant's own policies
    - Stable ordering: priority descending, insertion order for ties
    - Snapshot reads: records are frozen, so readers never see partial updates
    - Validate on write: malformed rules raise ConfigurationError here
"""

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Iterable

from pydantic import ValidationError

from warden.errors import ConfigurationError, InvalidConditionError, InvalidRuleError
from warden.schema import ConditionOperator, Policy, PolicyRule, PolicyStats

logger = logging.getLogger(__name__)

# Fields update() may change
UPDATABLE_FIELDS = frozenset({"name", "description", "rules", "priority", "enabled"})

# Fields that identify a policy and never change
IMMUTABLE_FIELDS = frozenset({"id", "tenant_id", "created_at"})


def generate_policy_id() -> str:
    """Generate a unique policy id."""
    return uuid.uuid4().hex


def coerce_rules(rules: Iterable[PolicyRule | dict[str, Any]]) -> list[PolicyRule]:
    """
    Validate rules given as models or plain dicts.

    Args:
        rules: PolicyRule instances or dicts shaped like them

    Returns:
        List of validated PolicyRule objects

    Raises:
        InvalidConditionError: If a condition uses an unknown operator
        InvalidRuleError: If a rule is otherwise malformed
    """
    if isinstance(rules, (str, bytes, dict)) or not isinstance(rules, Iterable):
        raise InvalidRuleError(
            validation_error=f"rules must be a list, got {type(rules).__name__}",
            field_name="rules",
        )

    validated: list[PolicyRule] = []
    for index, rule in enumerate(rules):
        if isinstance(rule, PolicyRule):
            validated.append(rule)
            continue
        try:
            validated.append(PolicyRule.model_validate(rule))
        except ValidationError as e:
            operator = _find_unknown_operator(rule)
            if operator is not None:
                raise InvalidConditionError(
                    operator=operator,
                    field_name=f"rules[{index}].conditions",
                    value=operator,
                ) from e
            raise InvalidRuleError(
                rule_index=index,
                validation_error=_summarize(e),
                field_name=f"rules[{index}]",
            ) from e
    return validated


def _find_unknown_operator(rule: Any) -> str | None:
    """Return the first unsupported operator in a raw rule dict, if any."""
    if not isinstance(rule, dict):
        return None
    conditions = rule.get("conditions")
    if not isinstance(conditions, list):
        return None
    known = {op.value for op in ConditionOperator}
    for condition in conditions:
        if isinstance(condition, dict):
            operator = condition.get("operator")
            if operator not in known:
                return str(operator)
    return None


def _summarize(error: ValidationError) -> str:
    """One-line summary of a pydantic ValidationError."""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}" if loc else str(item.get("msg")))
    return "; ".join(parts)


class PolicyStore:
    """
    Thread-safe in-memory store of policies indexed by tenant.

    Usage:
        store = PolicyStore()
        policy = store.create("acme", "Readers", rules, priority=10)
        store.list_policies("acme")  # priority-sorted
        store.update(policy.id, enabled=False)
        store.delete(policy.id)

    Attributes:
        _policies: Primary map of policy id to Policy (insertion ordered)
        _tenant_index: Tenant id to the ids of its policies
    """

    def __init__(self) -> None:
        self._policies: dict[str, Policy] = {}
        self._tenant_index: dict[str, dict[str, None]] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._policies)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(
        self,
        tenant_id: str,
        name: str,
        rules: Iterable[PolicyRule | dict[str, Any]],
        *,
        description: str | None = None,
        priority: int = 0,
        enabled: bool = True,
    ) -> Policy:
        """
        Create and index a new policy.

        Args:
            tenant_id: Owning tenant
            name: Human-readable name
            rules: Ordered rules (models or dicts)
            description: Optional description
            priority: Evaluation priority (higher first)
            enabled: Whether the policy is evaluated

        Returns:
            The stored Policy

        Raises:
            ConfigurationError: If the rules or fields are malformed
        """
        validated_rules = coerce_rules(rules)
        try:
            policy = Policy(
                id=generate_policy_id(),
                tenant_id=tenant_id,
                name=name,
                description=description,
                rules=validated_rules,
                priority=priority,
                enabled=enabled,
                created_at=datetime.now(UTC),
            )
        except ValidationError as e:
            raise ConfigurationError(
                message=f"Invalid policy: {_summarize(e)}",
                field_name="policy",
            ) from e

        with self._lock:
            self._policies[policy.id] = policy
            self._tenant_index.setdefault(tenant_id, {})[policy.id] = None

        logger.info(
            "Created policy %s (%r) for tenant %s with %d rule(s), priority %d",
            policy.id,
            name,
            tenant_id,
            len(validated_rules),
            priority,
        )
        return policy

    def get(self, policy_id: str) -> Policy | None:
        """Get a policy by id, or None if it doesn't exist."""
        with self._lock:
            return self._policies.get(policy_id)

    def update(self, policy_id: str, **fields: Any) -> Policy | None:
        """
        Update the mutable fields of a policy.

        Only name, description, rules, priority and enabled can change.
        The policy keeps its position for priority tie-breaks.

        Args:
            policy_id: The policy to update
            **fields: New values for updatable fields

        Returns:
            The updated Policy, or None if it doesn't exist

        Raises:
            ConfigurationError: If an identity or unknown field is given,
                or a new value is malformed
        """
        for name in fields:
            if name in IMMUTABLE_FIELDS:
                raise ConfigurationError(
                    message=f"Policy field '{name}' cannot be changed",
                    field_name=name,
                    value=fields[name],
                )
            if name not in UPDATABLE_FIELDS:
                raise ConfigurationError(
                    message=f"Unknown policy field: {name}",
                    field_name=name,
                    value=fields[name],
                    suggestion=f"Updatable fields: {', '.join(sorted(UPDATABLE_FIELDS))}",
                )

        changes = dict(fields)
        if "rules" in changes:
            changes["rules"] = coerce_rules(changes["rules"])

        with self._lock:
            current = self._policies.get(policy_id)
            if current is None:
                return None

            try:
                updated = Policy.model_validate({**current.model_dump(), **changes})
            except ValidationError as e:
                raise ConfigurationError(
                    message=f"Invalid policy update: {_summarize(e)}",
                    field_name="policy",
                ) from e

            # Reassigning an existing key keeps its insertion position
            self._policies[policy_id] = updated

        logger.info("Updated policy %s: %s", policy_id, ", ".join(sorted(changes)))
        return updated

    def delete(self, policy_id: str) -> bool:
        """
        Delete a policy.

        Returns:
            True if the policy existed
        """
        with self._lock:
            policy = self._policies.pop(policy_id, None)
            if policy is None:
                return False

            tenant_policies = self._tenant_index.get(policy.tenant_id)
            if tenant_policies is not None:
                tenant_policies.pop(policy_id, None)
                if not tenant_policies:
                    del self._tenant_index[policy.tenant_id]

        logger.info("Deleted policy %s from tenant %s", policy_id, policy.tenant_id)
        return True

    def enable(self, policy_id: str) -> Policy | None:
        """Enable a policy."""
        return self.update(policy_id, enabled=True)

    def disable(self, policy_id: str) -> Policy | None:
        """Disable a policy."""
        return self.update(policy_id, enabled=False)

    # =========================================================================
    # Listing
    # =========================================================================

    def list_policies(self, tenant_id: str) -> list[Policy]:
        """
        List a tenant's policies, highest priority first.

        Ties keep insertion order.

        Args:
            tenant_id: The tenant to list

        Returns:
            Snapshot list of the tenant's policies
        """
        with self._lock:
            ids = self._tenant_index.get(tenant_id, {})
            # Iterate the primary map so ties follow creation order
            policies = [
                policy
                for policy_id, policy in self._policies.items()
                if policy_id in ids
            ]
        return sorted(policies, key=lambda p: -p.priority)

    def list_enabled(self, tenant_id: str) -> list[Policy]:
        """List a tenant's enabled policies, highest priority first."""
        return [policy for policy in self.list_policies(tenant_id) if policy.enabled]

    def tenants(self) -> list[str]:
        """List tenants that currently own at least one policy."""
        with self._lock:
            return list(self._tenant_index)

    def get_stats(self) -> PolicyStats:
        """Aggregate policy counts."""
        with self._lock:
            policies = list(self._policies.values())

        by_tenant: dict[str, int] = {}
        for policy in policies:
            by_tenant[policy.tenant_id] = by_tenant.get(policy.tenant_id, 0) + 1

        return PolicyStats(
            total_policies=len(policies),
            enabled_policies=sum(1 for p in policies if p.enabled),
            policies_by_tenant=by_tenant,
        )
