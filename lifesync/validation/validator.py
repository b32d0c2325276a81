"""
Two-Stage Mutation Validation

DESIGN DECISION: Validation happens before anything is sent to the
remote service, in two distinct stages:

STAGE 1 - STRUCTURE:
- Unknown field names
- System fields (id, owner, timestamps) the client may not set
- Required field presence (create) / clearing (update)

STAGE 2 - VALUES:
- Enumerated fields take only their declared values
- Type and constraint checks per field
- Client-side formats (e.g. Budget.month as YYYY-MM)
- Cross-field consistency warnings (e.g. event ending before it starts)

Stage 2 only runs if stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues. It reports them.
"""

import re
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from lifesync.models.entities import (
    ENUM_FIELDS,
    SYSTEM_FIELDS,
    KindLike,
    RecordKind,
    field_adapter,
    field_names,
    normalize_field_names,
    required_fields,
    resolve_kind,
)
from lifesync.models.results import ValidationIssue, ValidationResult


# Formats this client writes. Not enforced on decode: the remote schema
# stores plain strings.
FIELD_FORMATS: dict[tuple[RecordKind, str], tuple[re.Pattern, str]] = {
    (RecordKind.BUDGET, "month"): (re.compile(r"^\d{4}-(0[1-9]|1[0-2])$"), "YYYY-MM"),
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


class RecordValidator:
    """
    Validates create/update fields for any record kind.

    Stateless: one instance can serve every kind.
    """

    def _validate_structure(
        self,
        kind: RecordKind,
        fields: dict[str, Any],
        operation: str,
    ) -> list[ValidationIssue]:
        issues = []
        known = field_names(kind)

        for name in fields:
            if name in SYSTEM_FIELDS:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="system_field",
                    message=f"{name} is maintained by the data service and cannot be set",
                ))
            elif name not in known:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="unknown_field",
                    message=f"{kind.value} has no field named {name}",
                ))

        required = required_fields(kind)

        if operation == "create":
            for name in sorted(required):
                if _is_blank(fields.get(name)):
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="missing",
                        message=f"{name} is required",
                    ))
        else:
            if not fields:
                issues.append(ValidationIssue(
                    field="*",
                    issue_type="empty",
                    message="An update must change at least one field",
                ))
            for name in sorted(required & fields.keys()):
                if _is_blank(fields[name]):
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="missing",
                        message=f"{name} is required and cannot be cleared",
                    ))

        return issues

    def _validate_values(
        self,
        kind: RecordKind,
        fields: dict[str, Any],
    ) -> tuple[dict[str, Any], list[ValidationIssue]]:
        issues = []
        values = {}
        enums = ENUM_FIELDS[kind]

        for name, value in fields.items():
            enum_cls = enums.get(name)
            if enum_cls is not None and value is not None:
                allowed = [member.value for member in enum_cls]
                raw = value.value if isinstance(value, Enum) else value
                if raw not in allowed:
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="invalid_enum",
                        message=f"{name} must be one of {allowed}, got {raw!r}",
                    ))
                    continue

            try:
                coerced = field_adapter(kind, name).validate_python(value)
            except PydanticValidationError as e:
                detail = e.errors()[0]["msg"] if e.errors() else str(e)
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="invalid_value",
                    message=f"{name}: {detail}",
                ))
                continue

            rule = FIELD_FORMATS.get((kind, name))
            if rule is not None and coerced is not None:
                pattern, label = rule
                if not pattern.match(coerced):
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="invalid_format",
                        message=f"{name} must be in {label} format, got {coerced!r}",
                    ))
                    continue

            values[name] = coerced

        return values, issues

    def _check_consistency(
        self,
        kind: RecordKind,
        values: dict[str, Any],
    ) -> list[ValidationIssue]:
        """Non-blocking cross-field checks."""
        issues = []

        if kind == RecordKind.EVENT:
            start, end = values.get("start_date"), values.get("end_date")
            if start and end and end < start:
                issues.append(ValidationIssue(
                    field="end_date",
                    issue_type="inconsistent",
                    message="Event ends before it starts",
                    severity="warning",
                ))

        if kind == RecordKind.GOAL:
            progress, target = values.get("current_progress"), values.get("target_value")
            if progress is not None and target is not None and progress > target:
                issues.append(ValidationIssue(
                    field="current_progress",
                    issue_type="suspicious_value",
                    message="Progress exceeds the goal target",
                    severity="warning",
                ))

        return issues

    def _validate(
        self,
        kind: KindLike,
        fields: dict[str, Any],
        operation: str,
    ) -> ValidationResult:
        record_kind = resolve_kind(kind)
        normalized = normalize_field_names(record_kind, fields)

        issues = self._validate_structure(record_kind, normalized, operation)
        values = {}

        if not issues:
            values, value_issues = self._validate_values(record_kind, normalized)
            issues.extend(value_issues)
            if not value_issues:
                issues.extend(self._check_consistency(record_kind, values))

        return ValidationResult(
            kind=record_kind.value,
            operation=operation,
            issues=issues,
            values=values,
        )

    def validate_create(self, kind: KindLike, fields: dict[str, Any]) -> ValidationResult:
        """Validate the full field set of a new record."""
        return self._validate(kind, fields, "create")

    def validate_update(self, kind: KindLike, fields: dict[str, Any]) -> ValidationResult:
        """Validate a partial field set replacing values of an existing record."""
        return self._validate(kind, fields, "update")
