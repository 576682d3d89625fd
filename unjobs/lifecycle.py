"""
Derived posting fields: deadline status, urgency, application window,
location type and skill domains.

All functions are pure and take the reference time explicitly. Datetimes are
naive and in UTC.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from .normalize import split_labels

CLOSING_SOON_DAYS = 3
URGENT_DAYS = 7
NORMAL_DAYS = 30

HQ_COUNTRIES = [
    "united states", "switzerland", "austria", "italy", "france",
    "belgium", "netherlands", "kenya", "thailand",
]
REMOTE_MARKERS = ["home", "remote"]

SKILL_DOMAIN_KEYWORDS = {
    "Technical": ["software", "data", "it", "programming", "engineering", "analysis"],
    "Management": ["management", "coordination", "leadership", "planning", "strategy"],
    "Communication": ["communication", "writing", "presentation", "advocacy", "outreach"],
    "Operational": ["logistics", "operations", "procurement", "administration", "finance"],
}

_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%d-%b-%Y")
_SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a source date into a naive UTC datetime.

    Accepts datetime, date or string values. Missing, "N/A" and unparseable
    values return None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    if not text or text.upper() == "N/A":
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parse_date(parsed)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_archived(value: Any) -> bool:
    """Source archived flags arrive as booleans, ints or strings."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in ("1", "true")


def _ceil_days(delta_seconds: float) -> int:
    return math.ceil(delta_seconds / _SECONDS_PER_DAY)


def days_remaining(apply_until: Optional[datetime], now: datetime) -> int:
    if apply_until is None:
        return 0
    return _ceil_days((apply_until - now).total_seconds())


def application_window_days(posting_date: Optional[datetime], apply_until: Optional[datetime]) -> int:
    if posting_date is None or apply_until is None:
        return 0
    return _ceil_days((apply_until - posting_date).total_seconds())


def posting_status(archived: bool, remaining: int) -> str:
    if archived:
        return "archived"
    if remaining < 0:
        return "expired"
    if remaining <= CLOSING_SOON_DAYS:
        return "closing_soon"
    return "active"


def urgency(remaining: int) -> str:
    if remaining < URGENT_DAYS:
        return "urgent"
    if remaining <= NORMAL_DAYS:
        return "normal"
    return "extended"


def location_type(duty_country: Optional[str], duty_station: Optional[str]) -> str:
    """Classify a duty location as Remote, HQ or Field."""
    station = (duty_station or "").lower()
    if any(marker in station for marker in REMOTE_MARKERS):
        return "Remote"
    country = (duty_country or "").lower()
    if any(hq in country for hq in HQ_COUNTRIES):
        return "HQ"
    return "Field"


def skill_domains(job_labels: Optional[str]) -> List[str]:
    """Broad skill domains present in a posting's labels."""
    labels = ", ".join(split_labels(job_labels)).lower()
    domains = []
    for domain, keywords in SKILL_DOMAIN_KEYWORDS.items():
        if any(k in labels for k in keywords):
            domains.append(domain)
    return domains


def format_date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def derive_lifecycle(
    posting_date: Optional[datetime],
    apply_until: Optional[datetime],
    archived: bool,
    now: datetime,
) -> Dict[str, Any]:
    """All deadline-derived fields for one posting."""
    remaining = days_remaining(apply_until, now)
    is_expired = archived or remaining < 0
    return {
        "days_remaining": remaining,
        "is_expired": is_expired,
        "is_active": not is_expired and remaining >= 0,
        "status": posting_status(archived, remaining),
        "urgency": urgency(remaining),
        "application_window_days": application_window_days(posting_date, apply_until),
        "formatted_posting_date": format_date(posting_date),
        "formatted_apply_until": format_date(apply_until),
    }
