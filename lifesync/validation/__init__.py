"""Validation package."""

from lifesync.validation.validator import RecordValidator

__all__ = ["RecordValidator"]
