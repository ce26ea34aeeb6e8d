"""
Schema definitions for Warden.

This module defines all the Pydantic models used throughout Warden:
- Policy/PolicyRule/ActorMatcher/PermissionCondition: Who may do what
- PermissionRequest: A single access check
- EvaluationResult: The outcome of evaluating a request
- AuditEntry/AuditQuery/AuditStats/TimelineBucket: The decision log
- PermissionConfig/PolicyDocument: Configuration loaded from YAML

Design Decisions:
    - Stored records are immutable (frozen=True); updates produce new records
    - Request context maps carry a fixed set of value types
    - Malformed rules are rejected when they are built, never at evaluation
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums
# =============================================================================


class ActorType(str, Enum):
    """
    Kind of entity requesting access.

    WILDCARD is only meaningful inside an ActorMatcher, where it matches
    any concrete actor type.
    """

    USER = "user"
    AGENT = "agent"
    SERVICE = "service"
    SYSTEM = "system"
    WILDCARD = "*"


class PermissionAction(str, Enum):
    """Actions an actor can request. WILDCARD matches any action."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"
    ADMIN = "admin"
    WILDCARD = "*"


class RuleEffect(str, Enum):
    """Effect of a matching rule."""

    ALLOW = "allow"
    DENY = "deny"


class ConditionOperator(str, Enum):
    """Operators supported by contextual conditions."""

    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    NIN = "nin"
    GT = "gt"
    LT = "lt"
    CONTAINS = "contains"


class AuditResult(str, Enum):
    """Outcome recorded in an audit entry."""

    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"


class ExportFormat(str, Enum):
    """Serialization formats for audit export."""

    JSONL = "jsonl"
    JSON = "json"


# Values allowed in request context
ContextScalar = Union[str, int, float, bool, None]
ContextValue = Union[str, int, float, bool, None, list[ContextScalar]]
Context = dict[str, ContextValue]


def _is_number(value: Any) -> bool:
    """True for int/float values, excluding bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Policy Models
# =============================================================================


class ActorMatcher(BaseModel):
    """
    Matches actors by type and glob pattern on the actor id.

    Attributes:
        type: Actor type to match, or "*" for any type
        pattern: Glob-like pattern; "*" matches any run of characters
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: ActorType = Field(..., description="Actor type, or '*' for any")
    pattern: str = Field(..., description="Glob pattern for the actor id", min_length=1)


class PermissionCondition(BaseModel):
    """
    A contextual condition evaluated against the request context.

    Operand shapes are checked here so a malformed condition is rejected
    when the policy is created.

    Attributes:
        field: Key looked up in the request context
        operator: Comparison to apply
        value: Right-hand operand
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str = Field(..., description="Context key to compare", min_length=1)
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: ContextValue = Field(default=None, description="Right-hand operand")

    @model_validator(mode="after")
    def validate_operand(self) -> "PermissionCondition":
        """Check that the operand fits the operator."""
        op = self.operator
        if op in (ConditionOperator.IN, ConditionOperator.NIN):
            if not isinstance(self.value, list):
                msg = f"Operator '{op.value}' requires a list value"
                raise ValueError(msg)
        elif op in (ConditionOperator.GT, ConditionOperator.LT):
            if not _is_number(self.value):
                msg = f"Operator '{op.value}' requires a numeric value"
                raise ValueError(msg)
        elif op == ConditionOperator.CONTAINS:
            if not isinstance(self.value, str):
                msg = "Operator 'contains' requires a string value"
                raise ValueError(msg)
        return self


class PolicyRule(BaseModel):
    """
    An allow/deny clause inside a policy.

    A rule matches when the actor, resource and action all match and
    every condition holds.

    Attributes:
        effect: Whether a match allows or denies
        actors: Actor matchers (any may match)
        resources: Resource glob patterns (any may match)
        actions: Actions covered by the rule
        conditions: Optional conditions (all must hold)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    effect: RuleEffect = Field(..., description="allow or deny")
    actors: list[ActorMatcher] = Field(..., description="Actor matchers", min_length=1)
    resources: list[str] = Field(..., description="Resource patterns", min_length=1)
    actions: list[PermissionAction] = Field(..., description="Covered actions", min_length=1)
    conditions: list[PermissionCondition] | None = Field(
        default=None,
        description="Conditions that must all hold",
    )

    @field_validator("resources")
    @classmethod
    def validate_resources(cls, v: list[str]) -> list[str]:
        """Reject empty resource patterns."""
        for pattern in v:
            if not pattern:
                msg = "Resource patterns must not be empty"
                raise ValueError(msg)
        return v


class Policy(BaseModel):
    """
    A named, prioritized list of rules owned by one tenant.

    Attributes:
        id: Unique identifier
        tenant_id: Owning tenant
        name: Human-readable name
        description: Optional description
        rules: Ordered rules (first match wins)
        priority: Higher priorities are evaluated first
        enabled: Disabled policies are skipped during evaluation
        created_at: When the policy was created
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique identifier")
    tenant_id: str = Field(..., description="Owning tenant")
    name: str = Field(..., description="Human-readable name")
    description: str | None = Field(default=None, description="Optional description")
    rules: list[PolicyRule] = Field(default_factory=list, description="Ordered rules")
    priority: int = Field(default=0, description="Evaluation priority (higher first)")
    enabled: bool = Field(default=True, description="Whether the policy is evaluated")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the policy was created",
    )


class PolicyStats(BaseModel):
    """Aggregate counts over the policy store."""

    model_config = ConfigDict(frozen=True)

    total_policies: int = 0
    enabled_policies: int = 0
    policies_by_tenant: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Request / Decision Models
# =============================================================================


class PermissionRequest(BaseModel):
    """
    A single access check.

    Attributes:
        actor_id: Identifier of the requesting actor
        actor_type: Concrete actor type (never "*")
        resource: Resource being accessed (e.g., "doc:42")
        action: Requested action
        context: Attributes used by rule conditions
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    actor_id: str = Field(..., description="Requesting actor id")
    actor_type: ActorType = Field(..., description="Requesting actor type")
    resource: str = Field(..., description="Target resource")
    action: PermissionAction = Field(..., description="Requested action")
    context: Context = Field(default_factory=dict, description="Request attributes")

    @field_validator("actor_type")
    @classmethod
    def validate_actor_type(cls, v: ActorType) -> ActorType:
        """A request must name a concrete actor type."""
        if v == ActorType.WILDCARD:
            msg = "Request actor_type must be concrete, not '*'"
            raise ValueError(msg)
        return v

    @property
    def key(self) -> str:
        """Key used for bulk check results."""
        return f"{self.actor_id}:{self.action.value}:{self.resource}"


class EvaluationResult(BaseModel):
    """
    Outcome of evaluating a request against a tenant's policies.

    Attributes:
        allowed: Whether the request is permitted
        reason: Human-readable explanation
        matched_policy: Id of the policy that decided, if any
        matched_rule: Zero-based index of the deciding rule, if any
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool = Field(..., description="Whether the request is permitted")
    reason: str = Field(..., description="Explanation of the decision")
    matched_policy: str | None = Field(default=None, description="Deciding policy id")
    matched_rule: int | None = Field(default=None, description="Deciding rule index", ge=0)

    @classmethod
    def allow(
        cls,
        reason: str,
        matched_policy: str | None = None,
        matched_rule: int | None = None,
    ) -> "EvaluationResult":
        """Create an ALLOW result."""
        return cls(
            allowed=True,
            reason=reason,
            matched_policy=matched_policy,
            matched_rule=matched_rule,
        )

    @classmethod
    def deny(
        cls,
        reason: str,
        matched_policy: str | None = None,
        matched_rule: int | None = None,
    ) -> "EvaluationResult":
        """Create a DENY result."""
        return cls(
            allowed=False,
            reason=reason,
            matched_policy=matched_policy,
            matched_rule=matched_rule,
        )


# =============================================================================
# Audit Models
# =============================================================================


class AuditEntry(BaseModel):
    """
    Immutable record of one decision or audited action.

    Attributes:
        id: Unique identifier
        tenant_id: Tenant the entry belongs to, if any
        actor_id: Acting entity
        actor_type: Kind of acting entity
        action: Action attempted (free-form string)
        resource: Resource involved
        result: success, denied or error
        details: Decision rationale and request context
        timestamp: When the entry was written
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique identifier")
    tenant_id: str | None = Field(default=None, description="Owning tenant")
    actor_id: str = Field(..., description="Acting entity")
    actor_type: ActorType = Field(..., description="Kind of acting entity")
    action: str = Field(..., description="Action attempted")
    resource: str = Field(..., description="Resource involved")
    result: AuditResult = Field(..., description="Outcome")
    details: dict[str, Any] = Field(default_factory=dict, description="Extra details")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the entry was written",
    )


class AuditQuery(BaseModel):
    """
    Filter for audit queries. Unset fields do not filter.

    Date bounds are inclusive. Results are ordered most-recent-first
    before offset and limit are applied.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: str | None = None
    actor_id: str | None = None
    actor_type: ActorType | None = None
    action: str | None = None
    resource: str | None = None
    result: AuditResult | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)


class AuditStats(BaseModel):
    """Aggregate counts over audit entries."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_result: dict[str, int] = Field(default_factory=dict)
    by_actor_type: dict[str, int] = Field(default_factory=dict)
    by_action: dict[str, int] = Field(default_factory=dict)
    by_actor: dict[str, int] = Field(default_factory=dict)
    by_tenant: dict[str, int] = Field(default_factory=dict)
    denial_rate: float = 0.0


class TimelineBucket(BaseModel):
    """Counts of audit entries within one fixed-size time window."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    total: int = 0
    success: int = 0
    denied: int = 0
    error: int = 0


# =============================================================================
# Configuration Models
# =============================================================================


class AuditConfig(BaseModel):
    """
    Settings for forwarding audit entries to a durable sink.

    Attributes:
        enabled_sink: Whether entries are forwarded to the configured sink
        max_retries: Extra attempts after a failed sink write
        retry_delay_seconds: Base delay between attempts (linear backoff)
        queue_size: Maximum entries waiting to be written
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled_sink: bool = Field(default=True, description="Forward entries to the sink")
    max_retries: int = Field(default=3, description="Retries per failed write", ge=0)
    retry_delay_seconds: float = Field(
        default=0.05,
        description="Base delay between retries",
        ge=0,
    )
    queue_size: int = Field(default=10_000, description="Pending write capacity", gt=0)


class PermissionConfig(BaseModel):
    """
    Configuration consumed by PermissionAPI.

    Attributes:
        default_deny: Accepted for compatibility; unmatched requests are
            always denied
        audit_all: Log every decision (denials are always logged)
        audit: Audit sink settings
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_deny: bool = Field(default=True, description="Deny unmatched requests")
    audit_all: bool = Field(default=True, description="Audit allowed decisions too")
    audit: AuditConfig = Field(default_factory=AuditConfig, description="Audit settings")


class PolicyDefinition(BaseModel):
    """A policy as written in a policy document (no id or tenant)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    description: str | None = None
    priority: int = 0
    enabled: bool = True
    rules: list[PolicyRule] = Field(default_factory=list)


class PolicyDocument(BaseModel):
    """
    A YAML policy document for one tenant.

    Example:
        tenant: acme
        seed_defaults: true
        config:
          audit_all: false
        policies:
          - name: Document readers
            priority: 10
            rules:
              - effect: allow
                actors: [{type: user, pattern: "*"}]
                resources: ["doc:*"]
                actions: [read]
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant: str = Field(..., min_length=1, description="Tenant the policies belong to")
    config: PermissionConfig = Field(default_factory=PermissionConfig)
    seed_defaults: bool = Field(default=False, description="Seed admin and agent policies")
    policies: list[PolicyDefinition] = Field(default_factory=list)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_policy_document(path: Path | str) -> PolicyDocument:
    """
    Load a policy document from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated PolicyDocument

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return PolicyDocument.model_validate(data)


def load_policy_document_from_string(content: str) -> PolicyDocument:
    """Load a policy document from a YAML string."""
    data = yaml.safe_load(content)
    return PolicyDocument.model_validate(data)
