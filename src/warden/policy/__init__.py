"""
Policy module for Warden.

This module implements the core security model: priority-ordered,
first-match-wins rule evaluation with deny-by-default semantics.

Key concepts:
    - PolicyStore: Owns policies and indexes them by tenant
    - matches(): Pure check of one rule against one request
    - PolicyEvaluator: Walks a tenant's policies and returns a decision
    - Built-ins: Admin, agent, read-only, resource and role policies

The evaluator is the security boundary of Warden. It must be:
    - Fail-closed: No match and malformed input both result in denial
    - Predictable: Same inputs always produce same decisions
    - Explainable: All decisions carry a reason
"""

from warden.policy.engine import PolicyEvaluator
from warden.policy.matcher import matches, matches_pattern
from warden.policy.store import PolicyStore

__all__ = [
    "PolicyEvaluator",
    "PolicyStore",
    "matches",
    "matches_pattern",
]
