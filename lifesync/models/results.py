"""
Outcome models returned to callers of the sync layer.

Failures are values here: a MutationResult carries its error instead of
raising it, so a UI can render a degraded state without try/except.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from lifesync.errors import LifeSyncError
from lifesync.models.entities import SyncRecord


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue (Python name)"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unknown_field')"
    )
    message: str
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )


class ValidationResult(BaseModel):
    """
    Result of validating mutation fields.

    values holds the type-checked field values (Python names) and is
    only meaningful when is_valid is True.
    """

    kind: str
    operation: str = Field(..., pattern="^(create|update)$")
    issues: list[ValidationIssue] = Field(default_factory=list)
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def issues_as_dicts(self) -> list[dict]:
        return [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in self.issues
        ]


# =============================================================================
# MUTATION OUTCOME
# =============================================================================

class MutationResult(BaseModel):
    """
    Outcome of a create/update/delete.

    On success, record is the remote service's response (create/update).
    It is informational: the Record Store is only written by the confirming
    live-query push (or a provisional optimistic write).
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    operation: str
    kind: str
    success: bool
    record_id: Optional[str] = None
    record: Optional[SyncRecord] = None
    error: Optional[LifeSyncError] = None
    optimistic: bool = Field(
        default=False,
        description="A provisional local write was made for this mutation"
    )

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None

    def raise_for_error(self) -> "MutationResult":
        """Re-raise the carried error, for callers preferring exceptions."""
        if self.error is not None:
            raise self.error
        return self
