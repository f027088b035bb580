"""
Response contracts for single-field generation requests.

Every request asks the model for exactly one JSON key. Nutrient contracts are
built from the catalog with `create_model` instead of one hand-written class
per nutrient; all contracts forbid extra keys.
"""

import math
from functools import lru_cache
from typing import Annotated, List, Optional, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, create_model, field_validator

from nutrigen.schemas.nutrition import NutrientValue, parse_numeric
from nutrigen.schemas.vocabulary import ALLERGENS, FOOD_CATEGORIES

_STRICT = ConfigDict(extra="forbid")

# Salvage answers: tolerant parsing, but still finite and non-negative
TolerantFloat = Annotated[float, BeforeValidator(parse_numeric), Field(ge=0, allow_inf_nan=False)]


def _canonical(values, vocabulary) -> List[str]:
    lookup = {v.lower(): v for v in vocabulary}
    result: List[str] = []
    for raw in values or []:
        match = lookup.get(str(raw).strip().lower())
        if match and match not in result:
            result.append(match)
    return result


class BestMatchResponse(BaseModel):
    model_config = _STRICT

    best_match: Optional[str] = None


class DescriptionResponse(BaseModel):
    model_config = _STRICT

    description: str = Field(..., min_length=1)

    @field_validator("description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description must not be blank")
        return v


class MinAgeResponse(BaseModel):
    model_config = _STRICT

    min_age_months: int = Field(..., ge=0)

    @field_validator("min_age_months", mode="before")
    @classmethod
    def coerce(cls, v):
        value = parse_numeric(v)
        if not math.isfinite(value):
            raise ValueError("min_age_months must be a finite number")
        return int(round(value))


class CategoriesResponse(BaseModel):
    """Unknown categories are dropped, known ones returned in canonical spelling"""

    model_config = _STRICT

    categories: List[str] = Field(default_factory=list)

    @field_validator("categories")
    @classmethod
    def known_only(cls, v: List[str]) -> List[str]:
        return _canonical(v, FOOD_CATEGORIES)


class AllergensResponse(BaseModel):
    model_config = _STRICT

    allergens: List[str] = Field(default_factory=list)

    @field_validator("allergens")
    @classmethod
    def known_only(cls, v: List[str]) -> List[str]:
        return _canonical(v, ALLERGENS)


class DietsResponse(BaseModel):
    # Filtered against the diet vocabulary by the orchestrator
    model_config = _STRICT

    diets: List[str] = Field(default_factory=list)


def response_key(schema: Type[BaseModel]) -> str:
    """The single JSON key a response contract expects."""
    return next(iter(schema.model_fields))


@lru_cache(maxsize=None)
def nutrient_response_model(key: str) -> Type[BaseModel]:
    """`{<key>: {value, unit}}` contract for one catalog field."""
    return create_model(
        f"{key}Response",
        __config__=_STRICT,
        **{key: (NutrientValue, ...)},
    )


@lru_cache(maxsize=None)
def salvage_response_model(key: str) -> Type[BaseModel]:
    """Narrow `{<key>: number}` contract used once a field keeps failing."""
    return create_model(
        f"{key}SalvageResponse",
        __config__=_STRICT,
        **{key: (TolerantFloat, ...)},
    )
