from typing import Any, List, Optional

from bs4 import BeautifulSoup


def normalize_text(s: Optional[str]) -> str:
    if not s:
        return ""
    return " ".join(str(s).strip().lower().split())


def html_to_text(s: Optional[str]) -> str:
    """Flatten an HTML description to plain text. Plain text passes through."""
    if not s:
        return ""
    s = str(s)
    if "<" not in s or ">" not in s:
        return s
    return BeautifulSoup(s, "html.parser").get_text(" ", strip=True)


def split_labels(labels: Optional[str]) -> List[str]:
    """Split a comma-separated label string, dropping blanks."""
    if not labels:
        return []
    return [label.strip() for label in str(labels).split(",") if label.strip()]


def clean_url(url: Any) -> Optional[str]:
    if url is None:
        return None
    url = str(url).strip()
    return url or None


def dedup_key(url: Any, job_id: Any) -> str:
    """Natural key of a posting: its URL when present, else its id."""
    return clean_url(url) or str(job_id)
