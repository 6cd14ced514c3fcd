"""
Grade progression table.

PRIMARY:   Grade 1 .. Grade 7, Grade 7 completes primary.
SECONDARY: Form 1 .. Form 6, Form 4 completes O-level unless the school
           continues to A-level, Form 6 completes A-level.
COMBINED:  both tables; the "Grade"/"Form" prefix picks the track.
"""

import re
from dataclasses import dataclass

from src.core.exceptions import ValidationError
from src.core.schools.models import SchoolType
from src.modules.students.models import CompletionStatus

_GRADE_RE = re.compile(r"^\s*grade\s*(\d+)\s*$", re.IGNORECASE)
_FORM_RE = re.compile(r"^\s*form\s*(\d+)\s*$", re.IGNORECASE)

PRIMARY_LEVELS = range(1, 8)
SECONDARY_LEVELS = range(1, 7)


@dataclass(frozen=True)
class ProgressionResult:
    """Either a next grade or a completion marker, never both."""

    next_grade: str | None = None
    completion_status: CompletionStatus | None = None

    @property
    def is_completed(self) -> bool:
        return self.completion_status is not None


def _parse(grade: str) -> tuple[str, int] | None:
    match = _GRADE_RE.match(grade)
    if match:
        return "Grade", int(match.group(1))
    match = _FORM_RE.match(grade)
    if match:
        return "Form", int(match.group(1))
    return None


def normalize_grade(grade: str | None) -> str | None:
    """'grade3', ' GRADE 3 ' -> 'Grade 3'. Unknown names are returned unchanged."""
    if grade is None or not grade.strip():
        return grade
    parsed = _parse(grade)
    if parsed is None:
        return grade
    track, level = parsed
    levels = PRIMARY_LEVELS if track == "Grade" else SECONDARY_LEVELS
    if level not in levels:
        return grade
    return f"{track} {level}"


def is_valid_grade_for_school(grade: str | None, school_type: str | None) -> bool:
    if not grade or not school_type:
        return False
    parsed = _parse(grade)
    if parsed is None:
        return False
    track, level = parsed
    if level not in (PRIMARY_LEVELS if track == "Grade" else SECONDARY_LEVELS):
        return False
    school_type = school_type.upper()
    if school_type == SchoolType.PRIMARY:
        return track == "Grade"
    if school_type == SchoolType.SECONDARY:
        return track == "Form"
    return school_type == SchoolType.COMBINED


def get_next_level(
    current_grade: str | None,
    school_type: str | None,
    continue_to_a_level: bool = False,
) -> ProgressionResult:
    """Look up where a student in current_grade goes at year end."""
    if current_grade is None or not current_grade.strip():
        raise ValidationError("Current grade cannot be empty", field="grade")

    school_type = (school_type or "").upper()
    parsed = _parse(current_grade)

    if parsed is not None:
        track, level = parsed
        primary = school_type in (SchoolType.PRIMARY, SchoolType.COMBINED)
        secondary = school_type in (SchoolType.SECONDARY, SchoolType.COMBINED)

        if track == "Grade" and primary and level in PRIMARY_LEVELS:
            if level == PRIMARY_LEVELS[-1]:
                return ProgressionResult(completion_status=CompletionStatus.COMPLETED_PRIMARY)
            return ProgressionResult(next_grade=f"Grade {level + 1}")

        if track == "Form" and secondary and level in SECONDARY_LEVELS:
            if level == 4 and not continue_to_a_level:
                return ProgressionResult(completion_status=CompletionStatus.COMPLETED_O_LEVEL)
            if level == SECONDARY_LEVELS[-1]:
                return ProgressionResult(completion_status=CompletionStatus.COMPLETED_A_LEVEL)
            return ProgressionResult(next_grade=f"Form {level + 1}")

    raise ValidationError(
        f"Unknown grade/form progression: {current_grade} ({school_type or 'no school type'})",
        field="grade",
    )
