"""
Declarative nutrient field table and the stage plan built on top of it.

Each nutrient is a row (key, unit, record group). Stages group rows into the
concurrent batches the orchestrator runs in order; the record assembler walks
the same table to build the final record, so both always agree on the field
set.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class FieldMode(str, Enum):
    """How a field behaves once every attempt failed"""
    STRICT = "strict"  # fail the run
    BEST_EFFORT = "best_effort"  # substitute the default


@dataclass(frozen=True)
class NutrientField:
    key: str
    unit: str
    group: str
    clamp: Optional[Tuple[float, float]] = None
    # weightG is an invariant, never a plausibility question
    uses_reference: bool = True
    prompt_template: Optional[str] = None


@dataclass(frozen=True)
class StageSpec:
    name: str
    title: str
    mode: FieldMode
    fields: Tuple[NutrientField, ...] = ()


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

BASE_INSTRUCTIONS = """You are a structured nutrition assistant. For EACH prompt:
- Reply ONLY with JSON matching the provided schema (no extra keys, no prose).
- Obey units and constraints stated in the prompt or in the schema.
- All numeric values MUST be for the RAW, EDIBLE PORTION **per 100 g exactly** (weightG = {{"value": 100, "unit": "g"}}).
- NEVER use per-serving, per-cup, per-piece, or cooked values unless explicitly requested; convert recalled values to per 100 g before answering.
- If a well-known nutrient is characteristically high for the food, do not return implausibly low numbers.
- Treat every prompt as independent; do not reuse prior outputs.
- FOOD IDENTITY IS STRICT: "{food_name}" is the exact item. DO NOT substitute synonyms, varieties, colors, species, cultivars, or cooking/processing forms.
- Never output "N/A", "NA", "nan", "null", empty strings, or objects missing "value" or "unit".
- If the nutrient is absent or unknown, return EXACTLY zero in the correct unit (e.g. {{"value": 0, "unit": "g"}}).
- Values must be finite, non-negative numbers plausible for **per 100 g**."""

IDENTITY_PREFIX = """Food identity (STRICT, no substitution):
- EXACT name (do not reinterpret or generalize): {food_name}
- Use RAW, edible portion **per 100 g exactly**.
- Do NOT switch to another color/variety/species or to cooked/processed forms.

Output must follow the JSON schema and units precisely. No prose. No extra keys."""

DESCRIPTION_PROMPT = """Write a concise, friendly description for the EXACT food name '{food_name}'. Do not reinterpret or substitute with related varieties (colors/species) or processed forms.
Return ONLY the 'description' field as per the schema."""

DESCRIPTION_REFERENCE_NOTE = (
    "\n\nNOTE: A nearby reference item in the DB is '{reference_name}'. "
    "Do NOT copy its description; keep identity strict."
)

MIN_AGE_PROMPT = """You are a pediatric nutrition specialist.
Provide 'min_age_months' for '{food_name}' as an integer.
If the food is suitable for all ages, return 0.
Return ONLY the 'min_age_months' field."""

MIN_AGE_REFERENCE_NOTE = (
    "\n\nCONTEXT: For reference, similar food '{reference_name}' has "
    "min_age_months = {min_age_months}. Use for plausibility only."
)

CATEGORIES_PROMPT = """Classify the food '{food_name}' into relevant categories.
Return ONLY the 'categories' array using these exact values:
{categories}"""

ALLERGENS_PROMPT = """List the common allergens present in the food '{food_name}'.
Return ONLY the 'allergens' array using these exact values (empty array if none):
{allergens}"""

DIETS_PROMPT = """Which of the following diets does '{food_name}' fit into?
Choose ONLY from this exact list (case-insensitive match; if none apply, return []):
{diets}

Return ONLY the 'diets' array as strings."""

IDENTITY_REFERENCE_NOTE = (
    "\n\nNOTE: A DB-near item is '{reference_name}'. "
    "Use it solely as plausibility context; do not copy it."
)

NUTRIENT_PROMPT = (
    "Food: {food_name} (RAW, edible portion). Return ONLY the field '{key}' as JSON "
    "with {{ \"value\": <number>, \"unit\": \"{unit}\" }} for **per 100 g exactly**. "
    "No prose. No other keys."
)

SALVAGE_PROMPT = (
    "Food: {food_name}. Return ONLY {{ \"{key}\": <number> }} where the number is "
    "the amount in {unit} per 100 g. A plain number, no unit, no prose."
)

PH_PROMPT = (
    "Food: {food_name}. Return ONLY the field 'alkalinityPH' as JSON with "
    "{{ \"value\": <number>, \"unit\": \"pH\" }}. If the food is neutral, use 7.0. "
    "No prose. No other keys."
)

WEIGHT_PROMPT = (
    "Food: {food_name}. Return ONLY the field 'weightG' as JSON with "
    "{{ \"value\": 100, \"unit\": \"g\" }}.\n"
    "CRITICAL: It MUST be exactly 100 (value: 100, unit: 'g'). No prose. No other keys."
)

WEIGHT_STRICT_PROMPT = (
    "Food: {food_name}.\n"
    "Return ONLY 'weightG' as JSON with {{ \"value\": 100, \"unit\": \"g\" }}. "
    "The value is the reference weight, NOT a nutrient: it is ALWAYS exactly 100 and "
    "the unit is ALWAYS 'g'. No prose. No other keys."
)

REFERENCE_CONTEXT = """

CONTEXT (rough magnitude only, do NOT copy numbers or units):
- A nearby DB item "{reference_name}" suggests this nutrient is {bucket} for similar foods.
- This is a plausibility hint. If this contradicts the strict identity of "{food_name}", IGNORE it."""


# ---------------------------------------------------------------------------
# Field table
# ---------------------------------------------------------------------------

def _group(group: str, rows) -> Tuple[NutrientField, ...]:
    return tuple(NutrientField(key=key, unit=unit, group=group) for key, unit in rows)


def _grams(group: str, keys) -> Tuple[NutrientField, ...]:
    return _group(group, [(key, "g") for key in keys])


MACRONUTRIENTS = _grams(
    "macronutrients", ["carbohydrates", "protein", "fat", "fiber", "totalSugars"]
)

OTHER = (
    NutrientField("alcoholEthyl", "g", "other"),
    NutrientField("caffeine", "mg", "other"),
    NutrientField("theobromine", "mg", "other"),
    NutrientField("cholesterol", "mg", "other"),
    NutrientField("energyKcal", "kcal", "other"),
    NutrientField("water", "g", "other"),
    NutrientField(
        "weightG", "g", "other", uses_reference=False, prompt_template=WEIGHT_PROMPT
    ),
    NutrientField("ash", "g", "other"),
    NutrientField("betaine", "mg", "other"),
    NutrientField(
        "alkalinityPH", "pH", "other", clamp=(0.0, 14.0), prompt_template=PH_PROMPT
    ),
)

VITAMINS = _group(
    "vitamins",
    [
        ("vitaminA_RAE", "µg"),
        ("retinol", "µg"),
        ("caroteneAlpha", "µg"),
        ("caroteneBeta", "µg"),
        ("cryptoxanthinBeta", "µg"),
        ("luteinZeaxanthin", "µg"),
        ("lycopene", "µg"),
        ("vitaminB1_Thiamin", "mg"),
        ("vitaminB2_Riboflavin", "mg"),
        ("vitaminB3_Niacin", "mg"),
        ("vitaminB5_PantothenicAcid", "mg"),
        ("vitaminB6", "mg"),
        ("folateDFE", "µg"),
        ("folateFood", "µg"),
        ("folateTotal", "µg"),
        ("folicAcid", "µg"),
        ("vitaminB12", "µg"),
        ("vitaminC", "mg"),
        ("vitaminD", "µg"),
        ("vitaminE", "mg"),
        ("vitaminK", "µg"),
        ("choline", "mg"),
    ],
)

MINERALS = _group(
    "minerals",
    [
        ("calcium", "mg"),
        ("iron", "mg"),
        ("magnesium", "mg"),
        ("phosphorus", "mg"),
        ("potassium", "mg"),
        ("sodium", "mg"),
        ("selenium", "µg"),
        ("zinc", "mg"),
        ("copper", "mg"),
        ("manganese", "mg"),
        ("fluoride", "µg"),
    ],
)

LIPID_TOTALS = _grams(
    "lipids",
    [
        "totalSaturated",
        "totalMonounsaturated",
        "totalPolyunsaturated",
        "totalTrans",
        "totalTransMonoenoic",
        "totalTransPolyenoic",
    ],
)

SATURATED_SERIES = _grams(
    "lipids",
    [
        "sfa4_0", "sfa6_0", "sfa8_0", "sfa10_0", "sfa12_0", "sfa13_0", "sfa14_0",
        "sfa15_0", "sfa16_0", "sfa17_0", "sfa18_0", "sfa20_0", "sfa22_0", "sfa24_0",
    ],
)

MONO_TRANS_SERIES = _grams(
    "lipids",
    [
        "mufa14_1", "mufa15_1", "mufa16_1", "mufa17_1", "mufa18_1", "mufa20_1",
        "mufa22_1", "mufa24_1", "tfa16_1_t", "tfa18_1_t", "tfa22_1_t", "tfa18_2_t",
    ],
)

POLYUNSATURATED_SERIES = _grams(
    "lipids",
    [
        "pufa18_2", "pufa18_3", "pufa18_4", "pufa20_2", "pufa20_3", "pufa20_4",
        "pufa20_5", "pufa21_5", "pufa22_4", "pufa22_5", "pufa22_6", "pufa2_4",
    ],
)

AMINO_ACIDS_A_L = _grams(
    "amino_acids",
    [
        "alanine", "arginine", "asparticAcid", "cystine", "glutamicAcid",
        "glycine", "histidine", "isoleucine", "leucine", "lysine",
    ],
)

AMINO_ACIDS_M_H = _grams(
    "amino_acids",
    [
        "methionine", "phenylalanine", "proline", "threonine", "tryptophan",
        "tyrosine", "valine", "serine", "hydroxyproline",
    ],
)

CARB_DETAILS = _grams(
    "carb_details",
    ["starch", "sucrose", "glucose", "fructose", "lactose", "maltose", "galactose"],
)

STEROLS = _group(
    "sterols",
    [
        ("phytosterols", "mg"),
        ("betaSitosterol", "mg"),
        ("campesterol", "mg"),
        ("stigmasterol", "mg"),
    ],
)


IDENTITY_STAGE = "identity"

STAGES: Tuple[StageSpec, ...] = (
    StageSpec(IDENTITY_STAGE, "Identity", FieldMode.STRICT),
    StageSpec("macronutrients", "Macros", FieldMode.STRICT, MACRONUTRIENTS),
    StageSpec("other", "Other", FieldMode.STRICT, OTHER),
    StageSpec("vitamins", "Vitamins", FieldMode.STRICT, VITAMINS),
    StageSpec("minerals", "Minerals", FieldMode.STRICT, MINERALS),
    StageSpec("lipid_totals", "Lipids", FieldMode.BEST_EFFORT, LIPID_TOTALS),
    StageSpec("saturated_series", "SFA", FieldMode.BEST_EFFORT, SATURATED_SERIES),
    StageSpec("mono_trans_series", "MUFA/TFA", FieldMode.BEST_EFFORT, MONO_TRANS_SERIES),
    StageSpec("polyunsaturated_series", "PUFA", FieldMode.BEST_EFFORT, POLYUNSATURATED_SERIES),
    StageSpec("amino_acids_a_l", "Amino acids", FieldMode.BEST_EFFORT, AMINO_ACIDS_A_L),
    StageSpec("amino_acids_m_h", "Amino acids", FieldMode.BEST_EFFORT, AMINO_ACIDS_M_H),
    StageSpec("carb_details", "Carbs", FieldMode.STRICT, CARB_DETAILS),
    StageSpec("sterols", "Sterols", FieldMode.STRICT, STEROLS),
)

ALL_FIELDS: Tuple[NutrientField, ...] = tuple(
    field for stage in STAGES for field in stage.fields
)

FIELDS_BY_KEY: Dict[str, NutrientField] = {field.key: field for field in ALL_FIELDS}


def fields_by_group() -> Dict[str, List[NutrientField]]:
    """Catalog fields per record group, in table order"""
    groups: Dict[str, List[NutrientField]] = {}
    for field in ALL_FIELDS:
        groups.setdefault(field.group, []).append(field)
    return groups


def step_label(stage: StageSpec, field: NutrientField) -> str:
    """Human readable step name used in logs, e.g. `Macros -> protein (g/100g)`"""
    if field.unit == "pH":
        return f"{stage.title} -> {field.key} (pH)"
    return f"{stage.title} -> {field.key} ({field.unit}/100g)"


def nutrient_prompt(food_name: str, field: NutrientField) -> str:
    template = field.prompt_template or NUTRIENT_PROMPT
    return template.format(food_name=food_name, key=field.key, unit=field.unit)
