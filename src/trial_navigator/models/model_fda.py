"""openFDA drug label data models."""

from pydantic import BaseModel, model_validator


class DrugLabel(BaseModel):
    """The sections of a structured product label used for safety screening.

    Free-text sections are joined into a single string each; an absent
    section is an empty string.
    """

    drug_name: str  # the name the label was looked up by
    brand_names: list[str] = []
    generic_names: list[str] = []
    indications: str = ""
    contraindications: str = ""
    warnings: str = ""
    boxed_warning: str = ""
    adverse_reactions: str = ""
    drug_interactions: str = ""
    dosage_forms: list[str] = []
    routes: list[str] = []

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

    def names(self) -> set[str]:
        """Lower-cased names this label is known by."""
        return {
            n.lower()
            for n in [self.drug_name, *self.brand_names, *self.generic_names]
            if n
        }
