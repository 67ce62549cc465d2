import re

_DOSE_RE = re.compile(r"\s+\d[\d.,]*\s*(?:(?:mg|mcg|g|ml|units?|iu)\b|%).*$")

SALT_SUFFIXES = [
    " hydrochloride",
    " hcl",
    " sodium",
    " potassium",
    " sulfate",
    " succinate",
    " tartrate",
    " citrate",
    " mesylate",
    " maleate",
    " phosphate",
    " besylate",
    " calcium",
]


def normalize_drug_name(name: str) -> str:
    """Lower-case a medication name and drop a trailing salt form.

    "Metformin Hydrochloride" -> "metformin", "Lisinopril 10 mg daily" -> "lisinopril".
    """
    name_lower = " ".join(name.lower().split())
    name_lower = _DOSE_RE.sub("", name_lower)
    for suffix in SALT_SUFFIXES:
        if name_lower.endswith(suffix):
            return name_lower[: -len(suffix)].strip()
    return name_lower


def unique_medications(medications: list[str]) -> list[str]:
    """Distinct medications in first-seen order, compared by normalized name."""
    seen: set[str] = set()
    unique: list[str] = []
    for med in medications:
        key = normalize_drug_name(med)
        if key and key not in seen:
            seen.add(key)
            unique.append(med)
    return unique


def mentions(term: str, text: str) -> bool:
    """Case-insensitive whole-word search for `term` in `text`."""
    term = term.strip()
    if not term or not text:
        return False
    return re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text, re.IGNORECASE) is not None
