"""Utility modules for Mentorflow."""

from .datetime_utils import (
    get_now,
    to_naive_utc,
    days_between,
    add_days,
)

from .validation import (
    ValidationResult,
    validate_url,
    required_resource_types,
    validate_submission_resources,
    validate_submission_text,
    validate_week_numbers,
)

__all__ = [
    # Datetime utilities
    "get_now",
    "to_naive_utc",
    "days_between",
    "add_days",
    # Validation utilities
    "ValidationResult",
    "validate_url",
    "required_resource_types",
    "validate_submission_resources",
    "validate_submission_text",
    "validate_week_numbers",
]
