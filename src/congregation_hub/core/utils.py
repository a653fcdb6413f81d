import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_POSTAL_CODE_RE = re.compile(r"\d{5}")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string, the timestamp format stored on every record."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def clean_record(value: Any) -> Any:
    """
    Recursively drops keys whose value is None so partial updates never
    overwrite stored fields with nulls.
    """
    if isinstance(value, dict):
        return {key: clean_record(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [clean_record(item) for item in value]
    return value


def normalize_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """
    Reduces a postal code to its 5-digit form:
    - "30301-1234" -> "30301"
    - " 30301 " -> "30301"
    Returns None when no 5-digit run is present.
    """
    if not postal_code:
        return None
    match = _POSTAL_CODE_RE.search(str(postal_code))
    return match.group(0) if match else None


def display_name(record: Dict[str, Any], fallback: str = "Unknown") -> str:
    """Best human-readable label for a person record."""
    name = record.get("display_name")
    if name:
        return name
    parts = [record.get("first_name"), record.get("last_name")]
    full_name = " ".join(part for part in parts if part)
    return full_name or record.get("email") or fallback


def last_name_initial(record: Dict[str, Any]) -> Optional[str]:
    """Upper-case first letter of the last name, falling back to the last word of the display name."""
    last_name = (record.get("last_name") or "").strip()
    if not last_name:
        words = (record.get("display_name") or "").split()
        last_name = words[-1] if words else ""
    for char in last_name:
        if char.isalpha():
            return char.upper()
    return None
