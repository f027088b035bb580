"""
Reference-context gating.

A matched reference food is only allowed to influence a prompt when its name is
close enough to the requested food, and even then it contributes a coarse
magnitude label ("high", "trace", ...) instead of its stored number.
"""

import logging
import re
from typing import Optional, Set

from nutrigen.core.config import settings
from nutrigen.schemas.nutrition import ReferenceFood
from nutrigen.services.nutrient_catalog import REFERENCE_CONTEXT

logger = logging.getLogger(__name__)

STOP_WORDS = {
    "raw", "fresh", "food", "product", "and", "or", "of", "the", "a",
    "суров", "пресен", "и", "или",
}

_NOISE = re.compile(r"[^a-zа-я0-9\s\-_/]")
_SEPARATORS = re.compile(r"[\s/\-_]+")

# (inclusive upper bound, label) ladders per unit
_GRAM_LADDER = ((0.05, "trace"), (0.5, "very-low"), (3, "low"), (10, "moderate"), (30, "high"))
_MILLIGRAM_LADDER = ((1, "trace"), (10, "very-low"), (50, "low"), (200, "moderate"), (1000, "high"))
_MICROGRAM_LADDER = ((5, "trace"), (50, "very-low"), (200, "low"), (1000, "moderate"), (5000, "high"))
_KCAL_LADDER = ((20, "very-low"), (80, "low"), (200, "moderate"), (400, "high"))

_LADDERS = {
    "g": _GRAM_LADDER,
    "mg": _MILLIGRAM_LADDER,
    "µg": _MICROGRAM_LADDER,
    "μg": _MICROGRAM_LADDER,
    "mcg": _MICROGRAM_LADDER,
    "ug": _MICROGRAM_LADDER,
    "kcal": _KCAL_LADDER,
}

BUCKET_RANK = {
    "zero": 0,
    "trace": 1,
    "non-zero": 1,
    "very-low": 2,
    "low": 3,
    "moderate": 4,
    "high": 5,
    "very-high": 6,
}


def name_tokens(name: str) -> Set[str]:
    lowered = _NOISE.sub(" ", name.lower())
    return {token for token in _SEPARATORS.split(lowered) if token and token not in STOP_WORDS}


def name_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the meaningful name tokens, 0 when either side is empty"""
    tokens_a, tokens_b = name_tokens(a), name_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def magnitude_bucket(value: float, unit: str) -> str:
    """Map a per-100 g amount to a coarse label for its unit"""
    value = max(0.0, value)
    if value == 0:
        return "zero"

    ladder = _LADDERS.get(unit.strip().lower())
    if ladder is None:
        return "non-zero"

    for upper, label in ladder:
        if value <= upper:
            return label
    return "very-high"


class ReferenceContextBuilder:
    """Appends reference magnitude hints to nutrient prompts for one run."""

    def __init__(
        self,
        food_name: str,
        reference: Optional[ReferenceFood],
        threshold: Optional[float] = None,
    ):
        self.food_name = food_name
        self.reference = reference
        self.threshold = settings.reference_similarity_threshold if threshold is None else threshold
        self.similarity = name_similarity(reference.name, food_name) if reference else 0.0

    @property
    def similar_enough(self) -> bool:
        return self.reference is not None and self.similarity >= self.threshold

    def with_reference(self, base_prompt: str, field_key: str) -> str:
        if not self.similar_enough:
            return base_prompt

        ref_value = self.reference.nutrient(field_key)
        if ref_value is None or not ref_value.unit.strip():
            return base_prompt

        bucket = magnitude_bucket(ref_value.value, ref_value.unit)
        logger.debug(f"Reference hint for {field_key}: {bucket} ({self.reference.name})")
        return base_prompt + REFERENCE_CONTEXT.format(
            reference_name=self.reference.name,
            bucket=bucket,
            food_name=self.food_name,
        )
