import logging
from typing import Optional

from nutrigen.core.config import settings
from nutrigen.core.errors import WeightInvariantError
from nutrigen.core.observability import log_step
from nutrigen.schemas.nutrition import NutrientValue
from nutrigen.schemas.responses import nutrient_response_model
from nutrigen.services.nutrient_catalog import WEIGHT_STRICT_PROMPT
from nutrigen.services.retry_executor import FieldPolicy, FieldRequest, RetryExecutor

logger = logging.getLogger(__name__)

WEIGHT_KEY = "weightG"
WEIGHT_STEP = "Other -> weightG STRICT (exactly 100 g)"


def is_valid(value: NutrientValue) -> bool:
    return abs(value.value - 100.0) < 1e-4 and value.unit.lower() == "g"


class WeightInvariantValidator:
    """Every record is per 100 g, so weightG must come back as exactly {100, "g"}."""

    def __init__(
        self,
        executor: RetryExecutor,
        prefix: str = "",
        backoff_ms: Optional[int] = None,
    ):
        self.executor = executor
        self.prefix = prefix
        self.backoff_ms = settings.weight_retry_backoff_ms if backoff_ms is None else backoff_ms

    async def ensure(self, food_name: str, value: NutrientValue) -> NutrientValue:
        if is_valid(value):
            return value

        logger.warning(
            f"weightG validation failed: got {value.value} {value.unit!r}, expected 100 g. "
            f"Retrying strict with a fresh session"
        )
        prompt = WEIGHT_STRICT_PROMPT.format(food_name=food_name)
        if self.prefix:
            prompt = f"{self.prefix}\n\n{prompt}"

        schema = nutrient_response_model(WEIGHT_KEY)
        response = await self.executor.run(
            FieldRequest(
                step=WEIGHT_STEP,
                prompt=prompt,
                schema=schema,
                policy=FieldPolicy(retries=1, backoff_ms=self.backoff_ms),
            )
        )
        retried: NutrientValue = getattr(response, WEIGHT_KEY)

        if not is_valid(retried):
            log_step(
                logger, logging.ERROR,
                f"weightG invalid after strict retry: {retried.value} {retried.unit!r}",
                step=WEIGHT_STEP, outcome="invariant_violation",
            )
            raise WeightInvariantError(retried.value, retried.unit)
        return retried
