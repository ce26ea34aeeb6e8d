"""
Warden - Policy-based access control for users, agents and services.

Warden decides whether an actor may perform an action on a resource
within a tenant, and records every decision that matters in an
append-only audit trail.
It provides:
- Multi-tenant, priority-ordered policies (deny-by-default)
- Glob-style actor and resource matching with contextual conditions
- Explainable decisions (reason + deciding policy and rule)
- Audit log with queries, stats, timelines and export, optionally
  persisted to SQLite

Example usage:
    from warden import PermissionAPI, PermissionRequest

    api = PermissionAPI()
    api.setup_default_policies("acme")
    api.check("acme", PermissionRequest(
        actor_id="agent-7", actor_type="agent",
        resource="task:42", action="execute",
    ))

    $ warden check policies.yaml --actor-id u1 --actor-type user \\
        --resource doc:42 --action read
"""

__version__ = "0.1.0"
__author__ = "Warden Contributors"

from warden.api import PermissionAPI, apply_policy_document
from warden.errors import PermissionDeniedError, WardenError
from warden.schema import (
    ActorType,
    AuditResult,
    EvaluationResult,
    PermissionAction,
    PermissionConfig,
    PermissionRequest,
    Policy,
    PolicyRule,
)

__all__ = [
    "__version__",
    "__author__",
    "ActorType",
    "AuditResult",
    "EvaluationResult",
    "PermissionAPI",
    "PermissionAction",
    "PermissionConfig",
    "PermissionDeniedError",
    "PermissionRequest",
    "Policy",
    "PolicyRule",
    "WardenError",
    "apply_policy_document",
]
