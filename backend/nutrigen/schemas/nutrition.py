import math
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Tokens the model uses for "nothing measurable"
_ZERO_TOKENS = {"na", "n/a", "trace", "tr", "-", "—"}
_NON_NUMERIC = re.compile(r"[^0-9.+\-eE]")


def parse_numeric(raw: Any) -> float:
    """Tolerant number parsing: "0,12" -> 0.12, "<0.1" -> 0.1, "trace" -> 0."""
    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, (int, float)):
        return float(raw)

    trimmed = str(raw).strip().lower()
    if trimmed in _ZERO_TOKENS:
        return 0.0

    cleaned = _NON_NUMERIC.sub("", trimmed.replace(",", "."))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


class NutrientValue(BaseModel):
    """Numeric value + unit, the leaf of every nutrient group"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    value: float = 0.0
    unit: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        return parse_numeric(v)

    @field_validator("value")
    @classmethod
    def finite_non_negative(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        if v < 0:
            raise ValueError("value must be non-negative")
        return v

    @field_validator("unit", mode="before")
    @classmethod
    def coerce_unit(cls, v):
        return "" if v is None else str(v).strip()

    @classmethod
    def zero(cls, unit: str) -> "NutrientValue":
        return cls(value=0.0, unit=unit)

    def with_unit_fallback(self, unit: str) -> "NutrientValue":
        """Fill an empty unit with the expected one"""
        if self.unit:
            return self
        return NutrientValue(value=self.value, unit=unit)

    def clamped(self, low: float, high: float) -> "NutrientValue":
        return NutrientValue(value=min(high, max(low, self.value)), unit=self.unit)


class ReferenceFood(BaseModel):
    """Read-only snapshot of a stored food used as plausibility context"""

    model_config = ConfigDict(frozen=True)

    name: str
    nutrients: Dict[str, NutrientValue] = Field(default_factory=dict)
    min_age_months: Optional[int] = None

    def nutrient(self, key: str) -> Optional[NutrientValue]:
        return self.nutrients.get(key)


# Group names in the order they appear in the final record
NUTRIENT_GROUPS = (
    "macronutrients",
    "other",
    "vitamins",
    "minerals",
    "lipids",
    "amino_acids",
    "carb_details",
    "sterols",
)


class NutritionRecord(BaseModel):
    """All nutrient groups of one food, per 100 g. Built once by the assembler."""

    model_config = ConfigDict(frozen=True)

    macronutrients: Dict[str, NutrientValue]
    other: Dict[str, NutrientValue]
    vitamins: Dict[str, NutrientValue]
    minerals: Dict[str, NutrientValue]
    lipids: Dict[str, NutrientValue]
    amino_acids: Dict[str, NutrientValue]
    carb_details: Dict[str, NutrientValue]
    sterols: Dict[str, NutrientValue]

    @model_validator(mode="after")
    def every_catalog_field_present(self):
        from nutrigen.services.nutrient_catalog import fields_by_group

        for group, fields in fields_by_group().items():
            present = getattr(self, group)
            missing = [f.key for f in fields if f.key not in present]
            if missing:
                raise ValueError(f"{group} is missing fields: {', '.join(missing)}")
        return self

    def group(self, name: str) -> Dict[str, NutrientValue]:
        return getattr(self, name)

    def get(self, key: str) -> Optional[NutrientValue]:
        for group in NUTRIENT_GROUPS:
            values = getattr(self, group)
            if key in values:
                return values[key]
        return None


class FoodDetailRecord(BaseModel):
    """Complete generated food: identity fields + nutrition record"""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    min_age_months: int = 0
    categories: List[str] = Field(default_factory=list)
    allergens: List[str] = Field(default_factory=list)
    diets: List[str] = Field(default_factory=list)
    nutrition: NutritionRecord
    reference_food: Optional[str] = None
    diagnostics: List[str] = Field(default_factory=list)


class FoodGenerationRequest(BaseModel):
    food_name: str = Field(..., min_length=1, max_length=200)

    @field_validator("food_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("food_name must not be blank")
        return v
