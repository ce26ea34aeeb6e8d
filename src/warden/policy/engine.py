"""
Policy Evaluator for Warden.

The evaluator decides every access request. It walks a tenant's enabled
policies in priority order and each policy's rules in list order; the
first matching rule decides.

Design Principles:
    - Deny-by-default: no policies, or no matching rule, means deny
    - Predictable: same store contents and request give the same decision
    - Explainable: every decision carries a reason and the deciding rule
    - Read-only: evaluation never mutates the store

How it works:
    1. Snapshot the tenant's enabled policies (already priority-sorted)
    2. For each policy, test each rule with the rule matcher
    3. Return the first match's effect, or deny
"""

import logging

from warden.policy.matcher import matches
from warden.policy.store import PolicyStore
from warden.schema import EvaluationResult, PermissionRequest, RuleEffect

logger = logging.getLogger(__name__)

REASON_NO_POLICIES = "No policies defined"
REASON_DEFAULT_DENY = "No matching policy rule (default deny)"


class PolicyEvaluator:
    """
    Evaluates permission requests against a PolicyStore.

    Usage:
        evaluator = PolicyEvaluator(store)
        result = evaluator.evaluate("acme", request)
        if result.allowed:
            # proceed
        else:
            # handle denial, see result.reason

    Attributes:
        store: The policy store to read from
    """

    def __init__(self, store: PolicyStore) -> None:
        """
        Initialize the evaluator.

        Args:
            store: The policy store to evaluate against
        """
        self.store = store

    def evaluate(self, tenant_id: str, request: PermissionRequest) -> EvaluationResult:
        """
        Evaluate a request for a tenant.

        Args:
            tenant_id: Tenant whose policies apply
            request: The access request

        Returns:
            EvaluationResult with the decision and its reason
        """
        policies = self.store.list_enabled(tenant_id)

        if not policies:
            logger.debug("Tenant %s has no enabled policies; denying %s", tenant_id, request.key)
            return EvaluationResult.deny(REASON_NO_POLICIES)

        for policy in policies:
            for index, rule in enumerate(policy.rules):
                if not matches(rule, request):
                    continue

                reason = f'Matched policy "{policy.name}" rule {index + 1}'
                logger.debug(
                    "Tenant %s: %s -> %s (%s)",
                    tenant_id,
                    request.key,
                    rule.effect.value,
                    reason,
                )
                if rule.effect == RuleEffect.ALLOW:
                    return EvaluationResult.allow(reason, policy.id, index)
                return EvaluationResult.deny(reason, policy.id, index)

        logger.debug("Tenant %s: no rule matched %s; denying", tenant_id, request.key)
        return EvaluationResult.deny(REASON_DEFAULT_DENY)
