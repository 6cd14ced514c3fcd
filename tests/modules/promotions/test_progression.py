"""Tests for the grade progression table."""

import pytest

from src.core.exceptions import ValidationError
from src.core.schools.models import SchoolType
from src.modules.promotions.progression import (
    get_next_level,
    is_valid_grade_for_school,
    normalize_grade,
)
from src.modules.students.models import CompletionStatus


class TestGetNextLevel:
    @pytest.mark.parametrize("level", range(1, 7))
    def test_primary_grades_advance(self, level):
        result = get_next_level(f"Grade {level}", SchoolType.PRIMARY)
        assert result.next_grade == f"Grade {level + 1}"
        assert not result.is_completed

    def test_grade_7_completes_primary(self):
        result = get_next_level("Grade 7", SchoolType.PRIMARY)
        assert result.next_grade is None
        assert result.completion_status == CompletionStatus.COMPLETED_PRIMARY

    def test_form_4_completes_o_level(self):
        result = get_next_level("Form 4", SchoolType.SECONDARY)
        assert result.completion_status == CompletionStatus.COMPLETED_O_LEVEL

    def test_form_4_continues_to_a_level(self):
        result = get_next_level("Form 4", SchoolType.SECONDARY, continue_to_a_level=True)
        assert result.next_grade == "Form 5"

    def test_form_6_completes_a_level(self):
        result = get_next_level("Form 6", "secondary", continue_to_a_level=True)
        assert result.completion_status == CompletionStatus.COMPLETED_A_LEVEL

    @pytest.mark.parametrize(
        "grade, expected",
        [("Grade 2", "Grade 3"), ("Form 1", "Form 2"), ("form 3", "Form 4")],
    )
    def test_combined_school_uses_both_tracks(self, grade, expected):
        assert get_next_level(grade, SchoolType.COMBINED).next_grade == expected

    def test_loose_spelling_accepted(self):
        assert get_next_level("  GRADE3 ", SchoolType.PRIMARY).next_grade == "Grade 4"

    @pytest.mark.parametrize(
        "grade, school_type",
        [
            ("Form 2", SchoolType.PRIMARY),
            ("Grade 3", SchoolType.SECONDARY),
            ("Grade 8", SchoolType.PRIMARY),
            ("Form 7", SchoolType.SECONDARY),
            ("ECD B", SchoolType.PRIMARY),
            ("Grade 3", None),
        ],
    )
    def test_unknown_progression(self, grade, school_type):
        with pytest.raises(ValidationError) as exc_info:
            get_next_level(grade, school_type)
        assert "Unknown grade/form progression" in exc_info.value.message

    @pytest.mark.parametrize("grade", [None, "", "   "])
    def test_empty_grade(self, grade):
        with pytest.raises(ValidationError):
            get_next_level(grade, SchoolType.PRIMARY)


class TestNormalizeGrade:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("grade3", "Grade 3"),
            (" GRADE 3 ", "Grade 3"),
            ("form 6", "Form 6"),
            ("Form 9", "Form 9"),
            ("Reception", "Reception"),
            (None, None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_grade(raw) == expected


def test_grade_matches_school_type():
    assert is_valid_grade_for_school("Grade 4", "PRIMARY")
    assert not is_valid_grade_for_school("Form 1", "PRIMARY")
    assert is_valid_grade_for_school("Form 1", "SECONDARY")
    assert is_valid_grade_for_school("Grade 1", "COMBINED")
    assert not is_valid_grade_for_school(None, "COMBINED")
    assert not is_valid_grade_for_school("Grade 9", "PRIMARY")
    assert not is_valid_grade_for_school("Form 7", "COMBINED")
