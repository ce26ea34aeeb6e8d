"""
Pytest configuration and fixtures for Warden tests.

This module provides shared fixtures used across unit and integration
tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from warden.api import PermissionAPI
from warden.policy import PolicyStore
from warden.schema import PermissionConfig, PermissionRequest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store() -> PolicyStore:
    """An empty policy store."""
    return PolicyStore()


@pytest.fixture
def api() -> Generator[PermissionAPI, None, None]:
    """A PermissionAPI that audits every decision."""
    with PermissionAPI() as permission_api:
        yield permission_api


@pytest.fixture
def make_request():
    """Factory for PermissionRequest with sensible defaults."""

    def _make(
        actor_id: str = "u1",
        actor_type: str = "user",
        resource: str = "doc:42",
        action: str = "read",
        **context,
    ) -> PermissionRequest:
        return PermissionRequest(
            actor_id=actor_id,
            actor_type=actor_type,
            resource=resource,
            action=action,
            context=context,
        )

    return _make


@pytest.fixture
def quiet_config() -> PermissionConfig:
    """Config that only audits denials."""
    return PermissionConfig(audit_all=False)


@pytest.fixture
def sample_policy_yaml() -> str:
    """A policy document with a reader policy and a deny override."""
    return """
tenant: acme
config:
  audit_all: true
policies:
  - name: Readers
    priority: 10
    rules:
      - effect: allow
        actors: [{type: user, pattern: "*"}]
        resources: ["doc:*"]
        actions: [read]
  - name: Lock secrets
    priority: 20
    rules:
      - effect: deny
        actors: [{type: "*", pattern: "*"}]
        resources: ["doc:secret*"]
        actions: ["*"]
"""


@pytest.fixture
def policy_file(temp_dir: Path, sample_policy_yaml: str) -> Path:
    """The sample policy document written to disk."""
    path = temp_dir / "policies.yaml"
    path.write_text(sample_policy_yaml)
    return path
