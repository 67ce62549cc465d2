"""ICD-10-CM lookup models."""

from pydantic import BaseModel


class DiagnosisCode(BaseModel):
    code: str  # e.g. "E11.9"
    description: str
    category: str = ""  # chapter derived from the first letter
    parent_codes: list[str] = []  # e.g. ["E11"] for "E11.9"
