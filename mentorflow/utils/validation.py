"""
Payload validation utilities.

Validates submission and content data before any database write to catch
errors early and provide clear feedback.
"""

import logging
from typing import Optional, List, Dict, Any, Iterable
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check."""
    is_valid: bool
    errors: List[str]
    warnings: List[str]

    @classmethod
    def success(cls, warnings: Optional[List[str]] = None) -> "ValidationResult":
        """Create a successful validation result."""
        return cls(is_valid=True, errors=[], warnings=warnings or [])

    @classmethod
    def failure(cls, errors: List[str], warnings: Optional[List[str]] = None) -> "ValidationResult":
        """Create a failed validation result."""
        return cls(is_valid=False, errors=errors, warnings=warnings or [])


def validate_url(url: str) -> bool:
    """
    Validate URL shape.

    Only scheme and host presence are checked; reachability is the upload
    facility's concern.
    """
    if not url or not url.strip():
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def required_resource_types(expected_resource_types: Optional[Iterable[Dict[str, Any]]]) -> List[str]:
    """Types marked required=true on a task template."""
    if not expected_resource_types:
        return []
    return [
        entry.get("type") for entry in expected_resource_types
        if entry.get("required") and entry.get("type")
    ]


def validate_submission_resources(
    resources: List[Dict[str, Any]],
    expected_resource_types: Optional[List[Dict[str, Any]]] = None,
) -> ValidationResult:
    """
    Validate the resource links attached to a submission.

    Args:
        resources: [{"type", "label", "url"}, ...] in display order
        expected_resource_types: the task template's expected types

    Returns:
        ValidationResult with errors and warnings
    """
    errors = []
    warnings = []

    for index, resource in enumerate(resources, start=1):
        if not (resource.get("label") or "").strip():
            errors.append(f"Resource #{index} is missing a label")
        url = (resource.get("url") or "").strip()
        if not url:
            errors.append(f"Resource #{index} is missing a url")
        elif not validate_url(url):
            warnings.append(f"Resource #{index} url '{url}' does not look like an http(s) link")
        if not (resource.get("type") or "").strip():
            errors.append(f"Resource #{index} is missing a type")

    required = required_resource_types(expected_resource_types)
    if required:
        submitted = {(r.get("type") or "").strip() for r in resources}
        for resource_type in required:
            if resource_type not in submitted:
                errors.append(f"Missing required resource type '{resource_type}'")

        allowed = {entry.get("type") for entry in expected_resource_types or []}
        for resource in resources:
            resource_type = (resource.get("type") or "").strip()
            if resource_type and resource_type not in allowed:
                errors.append(
                    f"Resource type '{resource_type}' is not expected for this task. "
                    f"Valid: {', '.join(sorted(t for t in allowed if t))}"
                )

    if errors:
        return ValidationResult.failure(errors, warnings)
    return ValidationResult.success(warnings)


def validate_submission_text(description: Optional[str], notes: Optional[str] = None) -> ValidationResult:
    errors = []
    warnings = []

    if not description or not description.strip():
        errors.append("Submission description is required")
    elif len(description) > 20000:
        errors.append("Submission description exceeds 20000 characters")
    elif len(description.strip()) < 10:
        warnings.append("Submission description is very short")

    if notes and len(notes) > 10000:
        errors.append("Submission notes exceed 10000 characters")

    if errors:
        return ValidationResult.failure(errors, warnings)
    return ValidationResult.success(warnings)


def validate_week_numbers(week_numbers: Iterable[int]) -> ValidationResult:
    """Week numbers must be positive and unique within a curriculum."""
    errors = []
    seen = set()
    for number in week_numbers:
        if number < 1:
            errors.append(f"Week number {number} must be positive")
        if number in seen:
            errors.append(f"Duplicate week number {number}")
        seen.add(number)

    if errors:
        return ValidationResult.failure(errors)
    return ValidationResult.success()
