"""
NoteMitra Backend — Note Payload Validation
=============================================

What:  The note submission pipeline shared by create and update.
How:   Plain functions over the decoded JSON body. Checks run in a fixed
       order and the first failure wins, so clients always see the same
       error code for the same bad payload.
Who:   Called by NoteCatalog before anything touches the store.

Create pipeline:
    1. EMPTY_BODY / INVALID_TYPE     payload shape
    2. INVALID_TYPE                  title, description, subject, branch must be strings
    3. TITLE_REQUIRED / TITLE_TOO_LONG
    4. DESCRIPTION_REQUIRED / DESCRIPTION_TOO_LONG
    5. SUBJECT_REQUIRED / SUBJECT_TOO_LONG
    6. SEMESTER_REQUIRED / INVALID_SEMESTER
    7. BRANCH_TOO_LONG / FILE_ID_TOO_LONG
    8. FILE_REQUIRED                 neither file_id nor file_url

A null value counts as "missing", not as a type error. `fileId` / `fileUrl`
are accepted as aliases of `file_id` / `file_url`.

Length limits match the column sizes in notemitra.models.note, so both
stores accept exactly the same payloads.
"""

import re
from typing import Any, Dict, Optional

from notemitra.exceptions import ValidationError

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 5000
SUBJECT_MAX_LENGTH = 200
BRANCH_MAX_LENGTH = 100
FILE_ID_MAX_LENGTH = 64
SEMESTER_MIN = 1
SEMESTER_MAX = 8

EDITABLE_FIELDS = ("title", "description", "subject", "semester", "branch", "file_id", "file_url")
TEXT_FIELDS = ("title", "description", "subject", "branch")
FIELD_ALIASES = {"fileId": "file_id", "fileUrl": "file_url"}

# ASCII digits only: str.isdigit() also accepts "²" and "①", which int() rejects
_INTEGER_PATTERN = re.compile(r"-?[0-9]+")


def _invalid_type(field: str) -> ValidationError:
    return ValidationError(
        message=f"Invalid type for '{field}': expected a string",
        error_code="INVALID_TYPE",
        field=field,
    )


def _normalize(payload: Any) -> Dict[str, Any]:
    """Check the payload shape and fold aliases into their canonical names."""
    if payload is None or (isinstance(payload, dict) and not payload):
        raise ValidationError(message="Request body is empty", error_code="EMPTY_BODY")
    if not isinstance(payload, dict):
        raise ValidationError(
            message="Invalid type for request body: expected a JSON object",
            error_code="INVALID_TYPE",
        )
    data = {}
    for key, value in payload.items():
        data[FIELD_ALIASES.get(key, key)] = value
    return data


def _check_types(data: Dict[str, Any]) -> None:
    for field in TEXT_FIELDS:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            raise _invalid_type(field)


def _required_text(data: Dict[str, Any], field: str, label: str, max_length: Optional[int] = None) -> str:
    value = (data.get(field) or "").strip()
    code_prefix = field.upper()
    if not value:
        raise ValidationError(
            message=f"{label} is required",
            error_code=f"{code_prefix}_REQUIRED",
            field=field,
        )
    if max_length is not None and len(value) > max_length:
        raise _too_long(field, label, max_length)
    return value


def _too_long(field: str, label: str, max_length: int) -> ValidationError:
    return ValidationError(
        message=f"{label} exceeds the maximum length of {max_length} characters",
        error_code=f"{field.upper()}_TOO_LONG",
        field=field,
        details={"max_length": max_length},
    )


def _optional_text(value: Any) -> Optional[str]:
    """Trimmed string or None; non-strings count as absent."""
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _bounded_optional_text(value: Any, field: str, label: str, max_length: int) -> Optional[str]:
    text = _optional_text(value)
    if text is not None and len(text) > max_length:
        raise _too_long(field, label, max_length)
    return text


def _parse_int_text(text: str) -> Optional[int]:
    text = text.strip()
    if _INTEGER_PATTERN.fullmatch(text):
        return int(text)
    return None


def parse_semester(value: Any) -> int:
    """
    Coerce a submitted semester to an int in [1, 8].

    Accepts ints, integral floats and digit strings. Booleans are rejected
    even though Python treats them as ints.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(
            message="Semester is required",
            error_code="SEMESTER_REQUIRED",
            field="semester",
        )

    semester: Optional[int] = None
    if isinstance(value, bool):
        semester = None
    elif isinstance(value, int):
        semester = value
    elif isinstance(value, float) and value.is_integer():
        semester = int(value)
    elif isinstance(value, str):
        semester = _parse_int_text(value)

    if semester is None or not SEMESTER_MIN <= semester <= SEMESTER_MAX:
        raise ValidationError(
            message=f"Semester must be a whole number between {SEMESTER_MIN} and {SEMESTER_MAX}",
            error_code="INVALID_SEMESTER",
            field="semester",
        )
    return semester


def validate_new_note(payload: Any) -> Dict[str, Any]:
    """
    Run the full create pipeline.

    Returns:
        Clean values for title, description, subject, semester, branch,
        file_id and file_url (the last three possibly None).
    """
    data = _normalize(payload)
    _check_types(data)

    clean = {
        "title": _required_text(data, "title", "Title", TITLE_MAX_LENGTH),
        "description": _required_text(data, "description", "Description", DESCRIPTION_MAX_LENGTH),
        "subject": _required_text(data, "subject", "Subject", SUBJECT_MAX_LENGTH),
        "semester": parse_semester(data.get("semester")),
        "branch": _bounded_optional_text(data.get("branch"), "branch", "Branch", BRANCH_MAX_LENGTH),
        "file_id": _bounded_optional_text(data.get("file_id"), "file_id", "File ID", FILE_ID_MAX_LENGTH),
        "file_url": _optional_text(data.get("file_url")),
    }
    require_file_reference(clean["file_id"], clean["file_url"])
    return clean


def validate_note_changes(payload: Any) -> Dict[str, Any]:
    """
    Validate a partial update.

    Only EDITABLE_FIELDS are considered; other keys are dropped silently.
    Each present field is held to the create rules. The caller checks the
    merged note still has a file reference and a free unique key.
    """
    data = _normalize(payload)
    data = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    _check_types(data)

    clean: Dict[str, Any] = {}
    if "title" in data:
        clean["title"] = _required_text(data, "title", "Title", TITLE_MAX_LENGTH)
    if "description" in data:
        clean["description"] = _required_text(data, "description", "Description", DESCRIPTION_MAX_LENGTH)
    if "subject" in data:
        clean["subject"] = _required_text(data, "subject", "Subject", SUBJECT_MAX_LENGTH)
    if "semester" in data:
        clean["semester"] = parse_semester(data["semester"])
    if "branch" in data:
        clean["branch"] = _bounded_optional_text(data["branch"], "branch", "Branch", BRANCH_MAX_LENGTH)
    if "file_id" in data:
        clean["file_id"] = _bounded_optional_text(data["file_id"], "file_id", "File ID", FILE_ID_MAX_LENGTH)
    if "file_url" in data:
        clean["file_url"] = _optional_text(data["file_url"])
    return clean


def require_file_reference(file_id: Optional[str], file_url: Optional[str]) -> None:
    if not file_id and not file_url:
        raise ValidationError(
            message="A file is required: upload a PDF or provide a file URL",
            error_code="FILE_REQUIRED",
            field="file",
        )


def parse_pagination(page: Any, limit: Any) -> tuple:
    """Validate page (>= 1) and limit (1 to 100); defaults 1 and 20."""
    page_value = _as_int(page, default=1)
    if page_value is None or page_value < 1:
        raise ValidationError(
            message="Page must be a positive integer",
            error_code="INVALID_PAGE",
            field="page",
        )
    limit_value = _as_int(limit, default=20)
    if limit_value is None or not 1 <= limit_value <= 100:
        raise ValidationError(
            message="Limit must be between 1 and 100",
            error_code="INVALID_LIMIT",
            field="limit",
        )
    return page_value, limit_value


def _as_int(value: Any, default: int) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return _parse_int_text(value)
    return None
