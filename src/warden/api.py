"""
Permission API for Warden.

PermissionAPI is the entry point callers use. It composes:
- PolicyStore: Owns the tenant's policies
- PolicyEvaluator: Decides each request
- AuditLogger: Records decisions (and forwards them to a durable sink)

Check Flow:
    1. Evaluate the request against the tenant's enabled policies
    2. Log the decision if audit_all is on, or if it was denied
    3. Return the decision to the caller

Design Principles:
    - Denials are always audited
    - Audit failures never change or block a decision
    - No hidden globals: every collaborator is owned by this object
"""

import logging
import threading
from typing import Any, Iterable

from warden.audit import AuditLogger, AuditSink
from warden.errors import PermissionDeniedError
from warden.policy import PolicyEvaluator, PolicyStore
from warden.policy import builtin
from warden.schema import (
    ActorType,
    AuditEntry,
    AuditQuery,
    AuditResult,
    AuditStats,
    EvaluationResult,
    ExportFormat,
    PermissionAction,
    PermissionConfig,
    PermissionRequest,
    Policy,
    PolicyDocument,
    PolicyRule,
    PolicyStats,
    TimelineBucket,
)

logger = logging.getLogger(__name__)


class PermissionAPI:
    """
    Unified access control: checks, enforcement, policy management and audit.

    Usage:
        api = PermissionAPI(PermissionConfig(audit_all=False))
        api.setup_default_policies("acme")
        request = PermissionRequest(
            actor_id="agent-7",
            actor_type="agent",
            resource="task:42",
            action="execute",
        )
        if api.check("acme", request):
            ...
        api.enforce("acme", request)  # raises PermissionDeniedError

    Attributes:
        config: Active configuration
        store: Policy store
        evaluator: Policy evaluator over the store
        audit_logger: Audit log
    """

    def __init__(
        self,
        config: PermissionConfig | None = None,
        *,
        store: PolicyStore | None = None,
        audit_logger: AuditLogger | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        """
        Initialize the API.

        Args:
            config: Configuration (defaults: default_deny=True, audit_all=True)
            store: Existing policy store to share (a new one by default)
            audit_logger: Existing audit logger to share
            audit_sink: Durable sink for a newly created audit logger
        """
        self.config = config or PermissionConfig()
        self.store = store if store is not None else PolicyStore()
        self.evaluator = PolicyEvaluator(self.store)
        self.audit_logger = (
            audit_logger
            if audit_logger is not None
            else AuditLogger(sink=audit_sink, config=self.config.audit)
        )
        self._seeded: dict[str, dict[str, str]] = {}
        self._seed_lock = threading.Lock()

        if not self.config.default_deny:
            logger.warning(
                "default_deny=False is not supported; requests with no matching "
                "rule are still denied"
            )

    @property
    def default_deny(self) -> bool:
        return self.config.default_deny

    @property
    def audit_all(self) -> bool:
        return self.config.audit_all

    def close(self) -> None:
        """Flush pending audit writes and stop the background writer."""
        self.audit_logger.close()

    def __enter__(self) -> "PermissionAPI":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Permission Checking
    # =========================================================================

    def check(self, tenant_id: str, request: PermissionRequest) -> bool:
        """
        Check whether a request is allowed.

        Args:
            tenant_id: Tenant whose policies apply
            request: The access request

        Returns:
            True if allowed
        """
        return self.check_with_details(tenant_id, request).allowed

    def check_with_details(
        self,
        tenant_id: str,
        request: PermissionRequest,
    ) -> EvaluationResult:
        """
        Evaluate a request and return the full result.

        Args:
            tenant_id: Tenant whose policies apply
            request: The access request

        Returns:
            EvaluationResult with reason and the deciding policy/rule
        """
        result = self.evaluator.evaluate(tenant_id, request)

        if self.config.audit_all or not result.allowed:
            self._record_decision(tenant_id, request, result)

        return result

    def enforce(self, tenant_id: str, request: PermissionRequest) -> None:
        """
        Require that a request is allowed.

        Raises:
            PermissionDeniedError: If the request is denied
        """
        result = self.check_with_details(tenant_id, request)

        if not result.allowed:
            raise PermissionDeniedError(
                tenant_id=tenant_id,
                actor_id=request.actor_id,
                actor_type=request.actor_type.value,
                resource=request.resource,
                action=request.action.value,
                reason=result.reason,
                matched_policy=result.matched_policy,
            )

    def check_multiple(
        self,
        tenant_id: str,
        requests: Iterable[PermissionRequest],
    ) -> dict[str, bool]:
        """
        Check a batch of requests, in order.

        Each request is checked and audited independently; a denial does
        not stop the rest of the batch.

        Returns:
            Mapping of "<actor_id>:<action>:<resource>" to the decision
        """
        results: dict[str, bool] = {}
        for request in requests:
            results[request.key] = self.check(tenant_id, request)
        return results

    def can_any(
        self,
        tenant_id: str,
        actor_id: str,
        actor_type: ActorType | str,
        resource: str,
        actions: Iterable[PermissionAction | str],
    ) -> bool:
        """True as soon as one of the actions is allowed."""
        for action in actions:
            request = PermissionRequest(
                actor_id=actor_id,
                actor_type=actor_type,
                resource=resource,
                action=action,
            )
            if self.check(tenant_id, request):
                return True
        return False

    def can_all(
        self,
        tenant_id: str,
        actor_id: str,
        actor_type: ActorType | str,
        resource: str,
        actions: Iterable[PermissionAction | str],
    ) -> bool:
        """False as soon as one of the actions is denied."""
        for action in actions:
            request = PermissionRequest(
                actor_id=actor_id,
                actor_type=actor_type,
                resource=resource,
                action=action,
            )
            if not self.check(tenant_id, request):
                return False
        return True

    def _record_decision(
        self,
        tenant_id: str,
        request: PermissionRequest,
        result: EvaluationResult,
    ) -> None:
        """Audit a decision. Failures are reported, never raised."""
        try:
            self.audit_logger.log(
                request.actor_id,
                request.actor_type,
                request.action.value,
                request.resource,
                AuditResult.SUCCESS if result.allowed else AuditResult.DENIED,
                {
                    "reason": result.reason,
                    "matched_policy": result.matched_policy,
                    "matched_rule": result.matched_rule,
                    "context": dict(request.context),
                },
                tenant_id,
            )
        except Exception:
            logger.exception(
                "Failed to audit decision for %s in tenant %s",
                request.key,
                tenant_id,
            )

    # =========================================================================
    # Policy Management
    # =========================================================================

    def create_policy(
        self,
        tenant_id: str,
        name: str,
        rules: Iterable[PolicyRule | dict[str, Any]],
        *,
        description: str | None = None,
        priority: int = 0,
        enabled: bool = True,
    ) -> Policy:
        """Create a policy. See PolicyStore.create."""
        return self.store.create(
            tenant_id,
            name,
            rules,
            description=description,
            priority=priority,
            enabled=enabled,
        )

    def get_policy(self, policy_id: str) -> Policy | None:
        """Get a policy, or None."""
        return self.store.get(policy_id)

    def update_policy(self, policy_id: str, **fields: Any) -> Policy | None:
        """Update a policy's mutable fields, or return None if it doesn't exist."""
        return self.store.update(policy_id, **fields)

    def delete_policy(self, policy_id: str) -> bool:
        """Delete a policy. True if it existed."""
        return self.store.delete(policy_id)

    def list_policies(self, tenant_id: str) -> list[Policy]:
        """A tenant's policies, highest priority first."""
        return self.store.list_policies(tenant_id)

    def enable_policy(self, policy_id: str) -> Policy | None:
        """Enable a policy."""
        return self.store.enable(policy_id)

    def disable_policy(self, policy_id: str) -> Policy | None:
        """Disable a policy."""
        return self.store.disable(policy_id)

    # =========================================================================
    # Built-in Policies
    # =========================================================================

    def setup_default_policies(self, tenant_id: str) -> dict[str, Policy]:
        """
        Seed the admin and agent policies for a tenant.

        Seeding happens once per tenant. Calling again returns the seeded
        policies that still exist and re-creates any that were deleted.

        Returns:
            {"admin": Policy, "agent": Policy}
        """
        policies: dict[str, Policy] = {}

        with self._seed_lock:
            seeded = self._seeded.setdefault(tenant_id, {})
            for kind, create in (
                ("admin", builtin.create_admin_policy),
                ("agent", builtin.create_agent_policy),
            ):
                existing = self.store.get(seeded[kind]) if kind in seeded else None
                if existing is None:
                    existing = create(self.store, tenant_id)
                    seeded[kind] = existing.id
                policies[kind] = existing

        logger.info("Default policies ready for tenant %s", tenant_id)
        return policies

    def create_read_only_policy(self, tenant_id: str, name: str) -> Policy:
        """Create a read-only policy for users."""
        return builtin.create_read_only_policy(self.store, tenant_id, name)

    def create_resource_policy(
        self,
        tenant_id: str,
        resource: str,
        allowed_actors: Iterable[tuple[str, ActorType]],
        allowed_actions: Iterable[PermissionAction],
    ) -> Policy:
        """Grant (actor_id, actor_type) pairs actions on one resource."""
        return builtin.create_resource_policy(
            self.store,
            tenant_id,
            resource,
            allowed_actors,
            allowed_actions,
        )

    def create_role_policy(
        self,
        tenant_id: str,
        role: str,
        resources: Iterable[str],
        actions: Iterable[PermissionAction],
    ) -> Policy:
        """Grant users with a role (context["role"]) actions on resources."""
        return builtin.create_role_policy(self.store, tenant_id, role, resources, actions)

    # =========================================================================
    # Audit
    # =========================================================================

    def audit(
        self,
        actor_id: str,
        actor_type: ActorType | str,
        action: str,
        resource: str,
        result: AuditResult | str,
        details: dict[str, Any] | None = None,
        tenant_id: str | None = None,
    ) -> AuditEntry:
        """Record an audit entry directly."""
        return self.audit_logger.log(
            actor_id,
            actor_type,
            action,
            resource,
            result,
            details,
            tenant_id,
        )

    def query_audit_log(self, query: AuditQuery | None = None, **filters: Any) -> list[AuditEntry]:
        """Query the audit log, most recent first."""
        return self.audit_logger.query(query, **filters)

    def get_recent_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        return self.audit_logger.get_recent(limit)

    def get_audit_by_actor(self, actor_id: str, limit: int = 100) -> list[AuditEntry]:
        return self.audit_logger.get_by_actor(actor_id, limit)

    def get_denied_actions(self, limit: int = 100) -> list[AuditEntry]:
        return self.audit_logger.get_denied(limit)

    def get_audit_stats(self, tenant_id: str | None = None) -> AuditStats:
        return self.audit_logger.get_stats(tenant_id)

    def get_activity_timeline(self, **options: Any) -> list[TimelineBucket]:
        """Bucketed activity counts. See AuditLogger.get_timeline."""
        return self.audit_logger.get_timeline(**options)

    def export_audit_log(
        self,
        query: AuditQuery | None = None,
        fmt: ExportFormat | str = ExportFormat.JSONL,
    ) -> str:
        return self.audit_logger.export(query, fmt)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, PolicyStats | AuditStats]:
        """Policy and audit statistics."""
        return {
            "policy": self.store.get_stats(),
            "audit": self.audit_logger.get_stats(),
        }


def apply_policy_document(api: PermissionAPI, document: PolicyDocument) -> list[Policy]:
    """
    Load a policy document's policies into a PermissionAPI.

    The document's config is not applied; build the API with
    PermissionAPI(document.config) to honour it.

    Args:
        api: API to load into
        document: Parsed policy document

    Returns:
        The policies created from the document, in document order
    """
    if document.seed_defaults:
        api.setup_default_policies(document.tenant)

    created = []
    for definition in document.policies:
        policy = api.create_policy(
            document.tenant,
            definition.name,
            definition.rules,
            description=definition.description,
            priority=definition.priority,
            enabled=definition.enabled,
        )
        created.append(policy)

    logger.info(
        "Loaded %d policies for tenant %s",
        len(document.policies),
        document.tenant,
    )
    return created
