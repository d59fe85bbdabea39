"""
Scalar coercion shared by the CSV and webhook normalizers.
Export cells arrive as strings; these helpers never raise on bad input.
"""
import re
from datetime import datetime
from typing import Any, Optional


def clean(value: Any) -> Optional[str]:
    """Strip a cell; empty becomes None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def as_id(value: Any) -> Optional[str]:
    """Platform ids arrive as ints in JSON and strings in CSV."""
    if value is None or isinstance(value, bool):
        return None
    return clean(value)


def parse_float(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None

    try:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
        if isinstance(raw, str):
            # Remove currency symbols, thousands separators, spaces
            clean_value = re.sub(r"[^\d.\-]", "", raw)
            if clean_value and clean_value not in (".", "-"):
                return float(clean_value)
    except (ValueError, TypeError):
        pass

    return None


def parse_int(raw: Any, default: int = 0) -> int:
    value = parse_float(raw)
    if value is None:
        return default
    return int(value)


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() in ("true", "yes", "1")


def parse_timestamp(raw: Any) -> Optional[datetime]:
    text = clean(raw)
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


def parse_tags(raw: Any) -> list:
    """Comma-delimited tags to an ordered, de-duplicated list."""
    if not raw:
        return []
    parts = raw if isinstance(raw, list) else str(raw).split(",")

    tags = []
    for part in parts:
        tag = str(part).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
