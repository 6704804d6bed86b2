"""
Tests for mentorflow/utils/validation.py

Covers submission text checks, resource link checks against a template's
expected resource types, and curriculum week numbering.
"""

import pytest
from mentorflow.utils.validation import (
    ValidationResult,
    validate_url,
    required_resource_types,
    validate_submission_resources,
    validate_submission_text,
    validate_week_numbers,
)


EXPECTED = [
    {"type": "github", "label": "Repository", "required": True},
    {"type": "demo", "label": "Live demo", "required": False},
]


class TestValidationResult:
    """Tests for ValidationResult dataclass."""

    def test_success_creates_valid_result(self):
        """Test creating a successful validation result."""
        result = ValidationResult.success()
        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_failure_with_warnings(self):
        """Test failure can include both errors and warnings."""
        result = ValidationResult.failure(
            errors=["Fatal error"],
            warnings=["Also a warning"]
        )
        assert result.is_valid is False
        assert len(result.errors) == 1
        assert len(result.warnings) == 1


class TestValidateUrl:
    """Tests for resource url shape checks."""

    @pytest.mark.parametrize("url", [
        "https://github.com/bea/onboarding",
        "http://localhost:3000/demo",
        "  https://example.com/path?q=1  ",
    ])
    def test_valid_urls(self, url):
        assert validate_url(url) is True

    @pytest.mark.parametrize("url", ["", "   ", "github.com/bea", "ftp://example.com", "https://"])
    def test_invalid_urls(self, url):
        assert validate_url(url) is False


class TestSubmissionText:
    """Tests for submission description and notes."""

    def test_description_required(self):
        """Empty and whitespace-only descriptions fail."""
        assert validate_submission_text("").is_valid is False
        assert validate_submission_text("   ").is_valid is False
        assert validate_submission_text(None).is_valid is False

    def test_short_description_warns(self):
        """A short description is allowed but produces a warning."""
        result = validate_submission_text("done")
        assert result.is_valid is True
        assert result.warnings == ["Submission description is very short"]

    def test_long_description_fails(self):
        result = validate_submission_text("x" * 20001)
        assert result.is_valid is False

    def test_long_notes_fail(self):
        result = validate_submission_text("A perfectly fine description", notes="n" * 10001)
        assert result.is_valid is False
        assert "notes" in result.errors[0]

    def test_normal_submission_passes_clean(self):
        result = validate_submission_text("Implemented the login form", notes="See PR")
        assert result.is_valid is True
        assert result.warnings == []


class TestSubmissionResources:
    """Tests for resource validation against expected types."""

    def test_required_types_extracted(self):
        assert required_resource_types(EXPECTED) == ["github"]
        assert required_resource_types(None) == []
        assert required_resource_types([]) == []

    def test_no_expectations_accepts_any_type(self):
        """Templates without expected types accept any typed link."""
        resources = [{"type": "figma", "label": "Designs", "url": "https://figma.com/f/1"}]
        assert validate_submission_resources(resources, None).is_valid is True

    def test_missing_required_type(self):
        resources = [{"type": "demo", "label": "Demo", "url": "https://demo.example.com"}]
        result = validate_submission_resources(resources, EXPECTED)
        assert result.is_valid is False
        assert "Missing required resource type 'github'" in result.errors

    def test_unexpected_type_rejected_when_types_are_required(self):
        resources = [
            {"type": "github", "label": "Repo", "url": "https://github.com/bea/x"},
            {"type": "figma", "label": "Designs", "url": "https://figma.com/f/1"},
        ]
        result = validate_submission_resources(resources, EXPECTED)
        assert result.is_valid is False
        assert any("figma" in e for e in result.errors)

    def test_missing_fields_reported_by_position(self):
        resources = [{"type": "github", "label": "", "url": ""}]
        result = validate_submission_resources(resources)
        assert result.is_valid is False
        assert "Resource #1 is missing a label" in result.errors
        assert "Resource #1 is missing a url" in result.errors

    def test_odd_url_only_warns(self):
        """Link reachability is not checked; a non-http url only warns."""
        resources = [{"type": "github", "label": "Repo", "url": "git@github.com:bea/x.git"}]
        result = validate_submission_resources(resources, EXPECTED)
        assert result.is_valid is True
        assert len(result.warnings) == 1

    def test_valid_required_and_optional(self):
        resources = [
            {"type": "github", "label": "Repo", "url": "https://github.com/bea/x"},
            {"type": "demo", "label": "Demo", "url": "https://bea.example.com"},
        ]
        assert validate_submission_resources(resources, EXPECTED).is_valid is True


class TestWeekNumbers:
    """Tests for curriculum week numbering."""

    def test_unique_positive_numbers(self):
        assert validate_week_numbers([1, 2, 3]).is_valid is True

    def test_duplicates_rejected(self):
        result = validate_week_numbers([1, 2, 2])
        assert result.is_valid is False
        assert result.errors == ["Duplicate week number 2"]

    def test_non_positive_rejected(self):
        result = validate_week_numbers([0, 1])
        assert result.is_valid is False

    def test_gaps_allowed(self):
        """Weeks need not be contiguous."""
        assert validate_week_numbers([1, 3, 7]).is_valid is True
