"""
Unit tests for schema models.

Tests cover:
- Rule and condition validation
- Request validation and bulk keys
- Config defaults
- Policy document YAML loading
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from warden.schema import (
    ActorType,
    AuditConfig,
    EvaluationResult,
    PermissionAction,
    PermissionCondition,
    PermissionConfig,
    PermissionRequest,
    PolicyRule,
    load_policy_document,
    load_policy_document_from_string,
)


class TestPermissionCondition:
    """Tests for condition operand validation."""

    def test_valid_conditions(self) -> None:
        PermissionCondition(field="role", operator="eq", value="admin")
        PermissionCondition(field="region", operator="in", value=["eu", "us"])
        PermissionCondition(field="score", operator="gt", value=5)
        PermissionCondition(field="email", operator="contains", value="@acme")

    def test_unknown_operator(self) -> None:
        with pytest.raises(ValidationError):
            PermissionCondition(field="x", operator="regex", value="a")

    @pytest.mark.parametrize(
        ("operator", "value"),
        [
            ("in", "eu"),
            ("nin", 3),
            ("gt", "5"),
            ("lt", True),
            ("contains", 5),
        ],
    )
    def test_operand_shape(self, operator: str, value) -> None:
        with pytest.raises(ValidationError):
            PermissionCondition(field="x", operator=operator, value=value)


class TestPolicyRule:
    """Tests for rule validation."""

    def test_minimal_rule(self) -> None:
        rule = PolicyRule(
            effect="allow",
            actors=[{"type": "*", "pattern": "*"}],
            resources=["*"],
            actions=["*"],
        )

        assert rule.actors[0].type == ActorType.WILDCARD
        assert rule.actions == [PermissionAction.WILDCARD]
        assert rule.conditions is None

    @pytest.mark.parametrize("field", ["actors", "resources", "actions"])
    def test_lists_must_not_be_empty(self, field: str) -> None:
        data = {
            "effect": "allow",
            "actors": [{"type": "user", "pattern": "*"}],
            "resources": ["doc:*"],
            "actions": ["read"],
        }
        data[field] = []

        with pytest.raises(ValidationError):
            PolicyRule.model_validate(data)

    def test_empty_resource_pattern(self) -> None:
        with pytest.raises(ValidationError):
            PolicyRule(
                effect="deny",
                actors=[{"type": "user", "pattern": "*"}],
                resources=[""],
                actions=["read"],
            )

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PolicyRule(
                effect="allow",
                actors=[{"type": "user", "pattern": "*"}],
                resources=["*"],
                actions=["read"],
                priority=5,
            )


class TestPermissionRequest:
    """Tests for requests."""

    def test_key(self) -> None:
        request = PermissionRequest(
            actor_id="a1", actor_type="agent", resource="task:1", action="execute"
        )
        assert request.key == "a1:execute:task:1"

    def test_wildcard_actor_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PermissionRequest(actor_id="a1", actor_type="*", resource="x", action="read")

    def test_context_keeps_value_types(self) -> None:
        request = PermissionRequest(
            actor_id="u1",
            actor_type="user",
            resource="doc:1",
            action="read",
            context={"flag": True, "score": 15, "ratio": 0.5, "tags": ["a", 1], "none": None},
        )

        assert request.context["flag"] is True
        assert request.context["score"] == 15
        assert isinstance(request.context["score"], int)
        assert request.context["tags"] == ["a", 1]

    def test_nested_context_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PermissionRequest(
                actor_id="u1",
                actor_type="user",
                resource="doc:1",
                action="read",
                context={"nested": {"a": 1}},
            )


class TestEvaluationResult:
    """Tests for result constructors."""

    def test_allow_and_deny(self) -> None:
        allowed = EvaluationResult.allow("ok", "p1", 0)
        denied = EvaluationResult.deny("no")

        assert allowed.allowed is True
        assert allowed.matched_policy == "p1"
        assert denied.allowed is False
        assert denied.matched_rule is None


class TestConfig:
    """Tests for configuration defaults."""

    def test_defaults(self) -> None:
        config = PermissionConfig()

        assert config.default_deny is True
        assert config.audit_all is True
        assert config.audit == AuditConfig()
        assert config.audit.max_retries == 3

    def test_invalid_values(self) -> None:
        with pytest.raises(ValidationError):
            AuditConfig(queue_size=0)
        with pytest.raises(ValidationError):
            AuditConfig(max_retries=-1)


class TestPolicyDocument:
    """Tests for YAML loading."""

    def test_load_from_string(self, sample_policy_yaml: str) -> None:
        doc = load_policy_document_from_string(sample_policy_yaml)

        assert doc.tenant == "acme"
        assert doc.seed_defaults is False
        assert [p.name for p in doc.policies] == ["Readers", "Lock secrets"]
        assert doc.policies[1].rules[0].actors[0].type == ActorType.WILDCARD

    def test_load_from_file(self, policy_file: Path) -> None:
        doc = load_policy_document(policy_file)
        assert len(doc.policies) == 2

    def test_config_section(self) -> None:
        doc = load_policy_document_from_string(
            """
tenant: acme
seed_defaults: true
config:
  audit_all: false
  audit:
    max_retries: 0
"""
        )

        assert doc.seed_defaults is True
        assert doc.config.audit_all is False
        assert doc.config.audit.max_retries == 0
        assert doc.policies == []

    def test_missing_tenant(self) -> None:
        with pytest.raises(ValidationError):
            load_policy_document_from_string("policies: []")

    def test_invalid_operator(self) -> None:
        with pytest.raises(ValidationError):
            load_policy_document_from_string(
                """
tenant: acme
policies:
  - name: Bad
    rules:
      - effect: allow
        actors: [{type: user, pattern: "*"}]
        resources: ["*"]
        actions: [read]
        conditions: [{field: x, operator: regex, value: a}]
"""
            )

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_policy_document(temp_dir / "missing.yaml")
