from typing import Any, Dict, List

REQUIRED_STR_FIELDS = ["title"]
OPTIONAL_STR_FIELDS = [
    "description",
    "job_labels",
    "short_agency",
    "long_agency",
    "department",
    "duty_station",
    "duty_country",
    "duty_continent",
    "country_code",
    "up_grade",
    "url",
    "languages",
]
OPTIONAL_INT_FIELDS = ["hs_min_exp", "bachelor_min_exp", "master_min_exp"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_int_like(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, int):
        return True
    return isinstance(v, str) and v.strip().lstrip("-").isdigit()


def validate_source_row(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Dates are not checked here; unparseable dates are treated as missing.
    """
    errors: List[str] = []

    if data.get("id") is None:
        errors.append("Missing required field: id")
    elif not _is_int_like(data["id"]):
        errors.append("Field 'id' must be an integer")

    for f in REQUIRED_STR_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    # Optional strings: None or a string
    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    for f in OPTIONAL_INT_FIELDS:
        if data.get(f) is not None and not _is_int_like(data[f]):
            errors.append(f"Field '{f}' must be an integer if provided")

    return errors
