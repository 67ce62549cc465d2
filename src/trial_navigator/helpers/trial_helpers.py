"""Parsing helpers for free-text trial fields."""

import re

from trial_navigator.constants import BIOMARKER_PATTERN

_BULLET_RE = re.compile(r"^\s*(?:[-•*·]|\d+[.)])\s*")
_EXCLUSION_RE = re.compile(r"exclusion criteria:?", re.IGNORECASE)
_INCLUSION_RE = re.compile(r"inclusion criteria:?", re.IGNORECASE)
_AGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(year|month|week|day)?", re.IGNORECASE)


def parse_age_years(text: str | None) -> float | None:
    """Parse a registry age string ("18 Years", "6 Months") into years.

    Returns None for empty or unparseable text ("N/A").
    """
    if not text:
        return None
    match = _AGE_RE.search(text)
    if not match:
        return None
    value = float(match.group(1))
    unit = (match.group(2) or "year").lower()
    if unit == "month":
        return value / 12
    if unit == "week":
        return value / 52
    if unit == "day":
        return value / 365
    return value


def _criteria_lines(block: str) -> list[str]:
    lines = []
    for line in block.splitlines():
        cleaned = _BULLET_RE.sub("", line).strip()
        if cleaned:
            lines.append(cleaned)
    return lines


def parse_eligibility_criteria(text: str | None) -> tuple[list[str], list[str]]:
    """Split an eligibility text block into (inclusion, exclusion) items.

    The text is split at the "Exclusion Criteria" heading; the inclusion block
    is whatever follows the "Inclusion Criteria" heading (or the whole first
    part if there is no heading). Bullets and numbering are stripped and blank
    lines dropped.
    """
    if not text or not text.strip():
        return [], []

    parts = _EXCLUSION_RE.split(text, maxsplit=1)
    inclusion_block = parts[0]
    exclusion_block = parts[1] if len(parts) > 1 else ""

    inclusion_parts = _INCLUSION_RE.split(inclusion_block, maxsplit=1)
    inclusion_block = inclusion_parts[-1]

    return _criteria_lines(inclusion_block), _criteria_lines(exclusion_block)


def extract_biomarkers(text: str | None) -> list[str]:
    """Biomarker names mentioned in `text`, upper-cased, first-seen order."""
    if not text:
        return []
    found: list[str] = []
    for match in re.finditer(BIOMARKER_PATTERN, text, re.IGNORECASE):
        marker = match.group(1).upper()
        if marker not in found:
            found.append(marker)
    return found


def normalize_biomarker(name: str) -> str:
    """Canonical comparison form: "PD-L1" == "pdl1", "HER-2" == "HER2"."""
    return re.sub(r"[\s\-_]", "", name).upper()
