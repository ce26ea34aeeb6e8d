"""
Exception hierarchy for Warden.

All Warden exceptions inherit from WardenError, allowing callers to catch
all Warden-specific exceptions with a single except clause.

Exception Categories:
    - PermissionDeniedError: Raised by enforce() when a request is denied
    - ConfigurationError: Malformed policy, rule or condition input
    - AuditWriteError: An audit entry could not be persisted
    - StorageError: Database operation failed

Lookups that miss (unknown policy id, unknown actor) are not errors:
they return None or False and callers check for absence explicitly.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Permission errors: 1xxx
ERROR_PERMISSION_DENIED = 1001

# Configuration errors: 2xxx
ERROR_CONFIG_INVALID = 2001
ERROR_CONFIG_CONDITION = 2002
ERROR_CONFIG_RULE = 2003

# Audit errors: 3xxx
ERROR_AUDIT_WRITE = 3001

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class WardenError(Exception):
    """
    Base exception for all Warden errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Permission Errors
# =============================================================================


@dataclass
class PermissionDeniedError(WardenError):
    """
    Raised by enforce() when the evaluator denies a request.

    The reason is meant for operators; redact it before showing it to
    end users.

    Attributes:
        tenant_id: Tenant the request was evaluated in
        actor_id: Requesting actor
        actor_type: Requesting actor type
        resource: Target resource
        action: Requested action
        reason: The evaluator's explanation
        matched_policy: Id of the deciding policy, if a deny rule matched
    """

    tenant_id: str = ""
    actor_id: str = ""
    actor_type: str = ""
    resource: str = ""
    action: str = ""
    reason: str = ""
    matched_policy: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Permission denied: {self.reason}"
        if self.code == 0:
            self.code = ERROR_PERMISSION_DENIED
        self.context.update({
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "actor_type": self.actor_type,
            "resource": self.resource,
            "action": self.action,
            "reason": self.reason,
            "matched_policy": self.matched_policy,
        })

    def redacted(self) -> str:
        """Message safe to show to end users."""
        return f"Permission denied: {self.action} on {self.resource}"


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigurationError(WardenError):
    """
    Raised when policy, rule or condition input is malformed.

    Always raised when the policy is created or updated, never during
    evaluation.

    Attributes:
        field_name: The offending field, if known
        value: The offending value, if known
    """

    field_name: str | None = None
    value: Any = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration for {self.field_name or 'input'}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context.update({
            "field_name": self.field_name,
            "value": self.value,
        })


@dataclass
class InvalidConditionError(ConfigurationError):
    """Raised when a condition uses an unsupported operator or operand."""

    operator: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid condition operator: {self.operator}"
        if self.code == 0:
            self.code = ERROR_CONFIG_CONDITION
        if not self.suggestion:
            self.suggestion = "Use one of: eq, neq, in, nin, gt, lt, contains"
        super().__post_init__()
        self.context["operator"] = self.operator


@dataclass
class InvalidRuleError(ConfigurationError):
    """Raised when a policy rule fails validation."""

    rule_index: int | None = None
    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            where = f"rule {self.rule_index + 1}" if self.rule_index is not None else "rule"
            self.message = f"Invalid {where}: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_RULE
        super().__post_init__()
        self.context.update({
            "rule_index": self.rule_index,
            "validation_error": self.validation_error,
        })


# =============================================================================
# Audit Errors
# =============================================================================


@dataclass
class AuditWriteError(WardenError):
    """
    Raised (and reported) when an audit entry cannot be persisted.

    Never propagated to permission checks: the dispatcher logs it and
    moves on.

    Attributes:
        entry_id: Id of the entry that was not written
        underlying_error: The sink's error message
        attempts: How many writes were attempted
    """

    entry_id: str = ""
    underlying_error: str = ""
    attempts: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Audit write failed for entry {self.entry_id} "
                f"after {self.attempts} attempt(s): {self.underlying_error}"
            )
        if self.code == 0:
            self.code = ERROR_AUDIT_WRITE
        self.context.update({
            "entry_id": self.entry_id,
            "underlying_error": self.underlying_error,
            "attempts": self.attempts,
        })


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(WardenError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "insert", "query")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
