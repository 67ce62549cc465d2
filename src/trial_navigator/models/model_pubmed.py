"""
Pydantic models for PubMed data.

These are the data contracts between the PubMed client and the pipeline.
"""

from pydantic import BaseModel, Field, model_validator


class LiteratureArticle(BaseModel):
    """A single PubMed article with metadata and abstract."""

    pmid: str  # PubMed identifier (e.g. "38472913")
    title: str = ""
    abstract: str = ""  # joined sections; empty string if missing
    authors: list[str] = []
    journal: str = ""
    year: int | None = None  # None for epub-ahead-of-print
    mesh_terms: list[str] = []
    doi: str | None = None
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)

    @model_validator(mode="before")
    @classmethod
    def coerce_nones(cls, values: dict) -> dict:
        if not isinstance(values, dict):
            return values
        for field_name, field_info in cls.model_fields.items():
            if field_info.is_required():
                continue
            if values.get(field_name) is None and field_info.default is not None:
                values[field_name] = field_info.default
        return values

    @property
    def url(self) -> str:
        return f"https://pubmed.ncbi.nlm.nih.gov/{self.pmid}/"
