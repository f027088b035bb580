from typing import Dict, Iterable, List, Mapping, Optional

from nutrigen.schemas.nutrition import (
    NUTRIENT_GROUPS,
    FoodDetailRecord,
    NutrientValue,
    NutritionRecord,
)
from nutrigen.services.nutrient_catalog import ALL_FIELDS, NutrientField


def assemble_record(
    values: Mapping[str, Optional[NutrientValue]],
    catalog: Iterable[NutrientField] = ALL_FIELDS,
) -> NutritionRecord:
    """Merge per-field results into one record.

    Walks the catalog, so every field is present; an empty slot becomes zero in
    the field's unit.
    """
    groups: Dict[str, Dict[str, NutrientValue]] = {group: {} for group in NUTRIENT_GROUPS}
    for field in catalog:
        value = values.get(field.key)
        if value is None:
            value = NutrientValue.zero(field.unit)
        groups[field.group][field.key] = value.with_unit_fallback(field.unit)
    return NutritionRecord(**groups)


def build_food_detail(
    name: str,
    description: str,
    min_age_months: int,
    categories: List[str],
    allergens: List[str],
    diets: List[str],
    values: Mapping[str, Optional[NutrientValue]],
    reference_food: Optional[str] = None,
    diagnostics: Iterable[str] = (),
) -> FoodDetailRecord:
    return FoodDetailRecord(
        name=name,
        description=description,
        min_age_months=min_age_months,
        categories=list(categories),
        allergens=list(allergens),
        diets=list(diets),
        nutrition=assemble_record(values),
        reference_food=reference_food,
        diagnostics=list(diagnostics),
    )
