"""
Built-in policies for Warden.

Ready-made rule sets for common setups. Each create_* helper stores an
ordinary policy: once created it can be edited, disabled or deleted like
any other.

Built-ins:
    - Admin Full Access (priority 100): users with role=admin may do anything
    - Agent Default Access (priority 50): agents work on tasks, memory and
      vault, and are denied users, tenants and policies
    - Read-only (priority 10): users may read anything and nothing else
    - Resource policy (priority 10): named actors on one resource
    - Role policy (priority 50): users with a given role
"""

from typing import Iterable

from warden.policy.store import PolicyStore
from warden.schema import (
    ActorMatcher,
    ActorType,
    ConditionOperator,
    PermissionAction,
    PermissionCondition,
    Policy,
    PolicyRule,
    RuleEffect,
)

ADMIN_POLICY_NAME = "Admin Full Access"
AGENT_POLICY_NAME = "Agent Default Access"

ADMIN_PRIORITY = 100
AGENT_PRIORITY = 50
ROLE_PRIORITY = 50
READ_ONLY_PRIORITY = 10
RESOURCE_PRIORITY = 10

AGENT_ALLOWED_RESOURCES = ["task:*", "memory:*", "vault:*"]
AGENT_DENIED_RESOURCES = ["user:*", "tenant:*", "policy:*"]
AGENT_ALLOWED_ACTIONS = [
    PermissionAction.READ,
    PermissionAction.CREATE,
    PermissionAction.UPDATE,
    PermissionAction.EXECUTE,
]


def _any_user() -> list[ActorMatcher]:
    return [ActorMatcher(type=ActorType.USER, pattern="*")]


def _any_agent() -> list[ActorMatcher]:
    return [ActorMatcher(type=ActorType.AGENT, pattern="*")]


def _role_condition(role: str) -> PermissionCondition:
    return PermissionCondition(field="role", operator=ConditionOperator.EQ, value=role)


# =============================================================================
# Rule Constructors
# =============================================================================


def admin_rules() -> list[PolicyRule]:
    """Users whose context has role=admin may do anything."""
    return [
        PolicyRule(
            effect=RuleEffect.ALLOW,
            actors=_any_user(),
            resources=["*"],
            actions=[PermissionAction.WILDCARD],
            conditions=[_role_condition("admin")],
        ),
    ]


def agent_rules() -> list[PolicyRule]:
    """Agents may work on tasks, memory and vault; never on users, tenants or policies."""
    return [
        PolicyRule(
            effect=RuleEffect.ALLOW,
            actors=_any_agent(),
            resources=list(AGENT_ALLOWED_RESOURCES),
            actions=list(AGENT_ALLOWED_ACTIONS),
        ),
        PolicyRule(
            effect=RuleEffect.DENY,
            actors=_any_agent(),
            resources=list(AGENT_DENIED_RESOURCES),
            actions=[PermissionAction.WILDCARD],
        ),
    ]


def read_only_rules() -> list[PolicyRule]:
    """Users may read any resource; every other action is denied."""
    return [
        PolicyRule(
            effect=RuleEffect.ALLOW,
            actors=_any_user(),
            resources=["*"],
            actions=[PermissionAction.READ],
        ),
        PolicyRule(
            effect=RuleEffect.DENY,
            actors=_any_user(),
            resources=["*"],
            actions=[
                PermissionAction.CREATE,
                PermissionAction.UPDATE,
                PermissionAction.DELETE,
                PermissionAction.EXECUTE,
                PermissionAction.ADMIN,
            ],
        ),
    ]


def resource_rules(
    resource: str,
    allowed_actors: Iterable[tuple[str, ActorType]],
    allowed_actions: Iterable[PermissionAction],
) -> list[PolicyRule]:
    """Allow the listed (actor_id, actor_type) pairs the listed actions on one resource."""
    return [
        PolicyRule(
            effect=RuleEffect.ALLOW,
            actors=[
                ActorMatcher(type=actor_type, pattern=actor_id)
                for actor_id, actor_type in allowed_actors
            ],
            resources=[resource],
            actions=list(allowed_actions),
        ),
    ]


def role_rules(
    role: str,
    resources: Iterable[str],
    actions: Iterable[PermissionAction],
) -> list[PolicyRule]:
    """Allow users whose context carries the given role."""
    return [
        PolicyRule(
            effect=RuleEffect.ALLOW,
            actors=_any_user(),
            resources=list(resources),
            actions=list(actions),
            conditions=[_role_condition(role)],
        ),
    ]


# =============================================================================
# Store Helpers
# =============================================================================


def create_admin_policy(store: PolicyStore, tenant_id: str) -> Policy:
    """Store the admin policy for a tenant."""
    return store.create(
        tenant_id,
        ADMIN_POLICY_NAME,
        admin_rules(),
        description="Full access for admin users",
        priority=ADMIN_PRIORITY,
    )


def create_agent_policy(store: PolicyStore, tenant_id: str) -> Policy:
    """Store the default agent policy for a tenant."""
    return store.create(
        tenant_id,
        AGENT_POLICY_NAME,
        agent_rules(),
        description="Default access for agents",
        priority=AGENT_PRIORITY,
    )


def create_read_only_policy(store: PolicyStore, tenant_id: str, name: str) -> Policy:
    """Store a read-only policy for a tenant."""
    return store.create(
        tenant_id,
        name,
        read_only_rules(),
        description="Read-only access",
        priority=READ_ONLY_PRIORITY,
    )


def create_resource_policy(
    store: PolicyStore,
    tenant_id: str,
    resource: str,
    allowed_actors: Iterable[tuple[str, ActorType]],
    allowed_actions: Iterable[PermissionAction],
) -> Policy:
    """Store a policy granting named actors access to one resource."""
    return store.create(
        tenant_id,
        f"Access to {resource}",
        resource_rules(resource, allowed_actors, allowed_actions),
        description=f"Policy for {resource}",
        priority=RESOURCE_PRIORITY,
    )


def create_role_policy(
    store: PolicyStore,
    tenant_id: str,
    role: str,
    resources: Iterable[str],
    actions: Iterable[PermissionAction],
) -> Policy:
    """Store a policy granting a role access to resources."""
    return store.create(
        tenant_id,
        f"Role: {role}",
        role_rules(role, resources, actions),
        description=f"Policy for {role} role",
        priority=ROLE_PRIORITY,
    )
