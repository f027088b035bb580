"""
Batch orchestrator - builds one FoodDetailRecord from ~127 single-field requests

Order of a run:
0. Reference match (advisory, may yield nothing)
1. Description (sequential, fail-hard); seeds the identity prefix
2. Stages from the nutrient catalog, each fanned out concurrently and joined
   before the next one starts (identity, macros, other, vitamins, ...)
3. weightG invariant check, then assembly into the immutable record

Strict stages fail the whole run when one of their fields is exhausted, and
cancel the still-running siblings first. Best-effort stages substitute zero.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from nutrigen.core.config import settings
from nutrigen.schemas.nutrition import FoodDetailRecord, NutrientValue, ReferenceFood
from nutrigen.schemas.responses import (
    AllergensResponse,
    CategoriesResponse,
    DescriptionResponse,
    DietsResponse,
    MinAgeResponse,
    nutrient_response_model,
    salvage_response_model,
)
from nutrigen.schemas.vocabulary import ALLERGENS, FOOD_CATEGORIES
from nutrigen.services.diet_vocabulary import DietVocabulary, filter_diets
from nutrigen.services.food_search import FoodSearch
from nutrigen.services.llm_client import GenerativeModel
from nutrigen.services.nutrient_catalog import (
    ALLERGENS_PROMPT,
    BASE_INSTRUCTIONS,
    CATEGORIES_PROMPT,
    DESCRIPTION_PROMPT,
    DESCRIPTION_REFERENCE_NOTE,
    DIETS_PROMPT,
    IDENTITY_PREFIX,
    IDENTITY_REFERENCE_NOTE,
    IDENTITY_STAGE,
    MIN_AGE_PROMPT,
    MIN_AGE_REFERENCE_NOTE,
    SALVAGE_PROMPT,
    STAGES,
    FieldMode,
    NutrientField,
    StageSpec,
    nutrient_prompt,
    step_label,
)
from nutrigen.services.record_assembler import build_food_detail
from nutrigen.services.reference_context import ReferenceContextBuilder
from nutrigen.services.reference_matcher import ReferenceMatcher
from nutrigen.services.retry_executor import FieldPolicy, FieldRequest, RetryExecutor
from nutrigen.services.task_coordinator import TaskCoordinator
from nutrigen.services.weight_validator import WEIGHT_KEY, WeightInvariantValidator

logger = logging.getLogger(__name__)

IDENTITY_TOKENS = 512

OnLog = Callable[[str], None]
OnStage = Callable[[str, int, int], Any]


@dataclass(frozen=True)
class RunContext:
    """Everything a run knows once the description step is done"""
    food_name: str
    identity_prefix: str
    reference: Optional[ReferenceFood] = None
    allowed_diets: Tuple[str, ...] = ()
    diagnostics: Tuple[str, ...] = ()

    def prompt(self, body: str) -> str:
        return f"{self.identity_prefix}\n\n{body}" if self.identity_prefix else body

    @property
    def reference_name(self) -> Optional[str]:
        return self.reference.name if self.reference else None


class BatchOrchestrator:
    def __init__(
        self,
        model: GenerativeModel,
        search: FoodSearch,
        diets: DietVocabulary,
        coordinator: Optional[TaskCoordinator] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.model = model
        self.search = search
        self.diets = diets
        self.coordinator = coordinator or TaskCoordinator()
        self.sleep = sleep

    async def generate(
        self,
        food_name: str,
        on_log: Optional[OnLog] = None,
        on_stage: Optional[OnStage] = None,
    ) -> FoodDetailRecord:
        food_name = food_name.strip()
        logger.info(f"Starting generation for '{food_name}'")
        if on_log:
            on_log(f"Starting AI data generation for '{food_name}'")

        executor = RetryExecutor(
            self.model,
            self.coordinator,
            BASE_INSTRUCTIONS.format(food_name=food_name),
            on_log=on_log,
            sleep=self.sleep,
        )

        match = await ReferenceMatcher(self.search, executor, on_log=on_log).match(food_name)
        reference = match.reference
        allowed_diets = tuple(self.diets.names())

        # 1) Description, sequential
        description_prompt = DESCRIPTION_PROMPT.format(food_name=food_name)
        if reference is not None:
            description_prompt += DESCRIPTION_REFERENCE_NOTE.format(reference_name=reference.name)
        description: DescriptionResponse = await executor.run(
            FieldRequest(
                step="Description",
                prompt=description_prompt,
                schema=DescriptionResponse,
                policy=FieldPolicy.from_settings(max_tokens=settings.description_base_tokens),
            )
        )
        self.coordinator.raise_if_cancelled()

        ctx = RunContext(
            food_name=food_name,
            identity_prefix=IDENTITY_PREFIX.format(food_name=food_name),
            reference=reference,
            allowed_diets=allowed_diets,
            diagnostics=tuple(match.diagnostics),
        )
        builder = ReferenceContextBuilder(food_name, reference)

        values: Dict[str, NutrientValue] = {}
        identity: Dict[str, Any] = {}
        total = len(STAGES)

        for index, stage in enumerate(STAGES, start=1):
            if stage.name == IDENTITY_STAGE:
                identity = await self._run_stage(stage, self._identity_requests(ctx), executor)
            else:
                results = await self._run_stage(
                    stage, self._nutrient_requests(ctx, stage, builder, executor), executor
                )
                for field in stage.fields:
                    if field.key == WEIGHT_KEY:
                        # judged on the raw answer, no unit fallback
                        validator = WeightInvariantValidator(executor, prefix=ctx.identity_prefix)
                        raw = getattr(results[WEIGHT_KEY], WEIGHT_KEY)
                        values[WEIGHT_KEY] = await validator.ensure(food_name, raw)
                    else:
                        values[field.key] = self._finalize(field, results.get(field.key))

            self.coordinator.raise_if_cancelled()
            if on_stage is not None:
                outcome = on_stage(stage.name, index, total)
                if inspect.isawaitable(outcome):
                    await outcome

        diets = filter_diets(identity["diets"].diets, ctx.allowed_diets) if "diets" in identity else []

        record = build_food_detail(
            name=food_name,
            description=description.description,
            min_age_months=identity["min_age_months"].min_age_months,
            categories=identity["categories"].categories,
            allergens=identity["allergens"].allergens,
            diets=diets,
            values=values,
            reference_food=ctx.reference_name,
            diagnostics=ctx.diagnostics,
        )
        logger.info(f"Generation for '{food_name}' complete ({len(values)} nutrients)")
        if on_log:
            on_log(f"Generation for '{food_name}' complete")
        return record

    def _identity_requests(self, ctx: RunContext) -> List[Tuple[str, FieldRequest]]:
        ref_name = ctx.reference_name
        note = IDENTITY_REFERENCE_NOTE.format(reference_name=ref_name) if ref_name else ""

        min_age = MIN_AGE_PROMPT.format(food_name=ctx.food_name)
        if ctx.reference is not None and ctx.reference.min_age_months is not None:
            min_age += MIN_AGE_REFERENCE_NOTE.format(
                reference_name=ref_name, min_age_months=ctx.reference.min_age_months
            )

        requests = [
            ("min_age_months", "Min Age (months)", min_age, MinAgeResponse, FieldPolicy.from_settings()),
            (
                "categories",
                "Categories",
                CATEGORIES_PROMPT.format(food_name=ctx.food_name, categories=", ".join(FOOD_CATEGORIES)) + note,
                CategoriesResponse,
                FieldPolicy.from_settings(max_tokens=IDENTITY_TOKENS),
            ),
            (
                "allergens",
                "Allergens",
                ALLERGENS_PROMPT.format(food_name=ctx.food_name, allergens=", ".join(ALLERGENS)) + note,
                AllergensResponse,
                FieldPolicy.from_settings(max_tokens=IDENTITY_TOKENS),
            ),
        ]

        if ctx.allowed_diets:
            requests.append(
                (
                    "diets",
                    "Diets",
                    DIETS_PROMPT.format(food_name=ctx.food_name, diets=", ".join(ctx.allowed_diets)) + note,
                    DietsResponse,
                    FieldPolicy.from_settings(max_tokens=IDENTITY_TOKENS),
                )
            )
        else:
            logger.info("Diet vocabulary is empty, skipping diets")

        return [
            (key, FieldRequest(step=step, prompt=ctx.prompt(body), schema=schema, policy=policy))
            for key, step, body, schema, policy in requests
        ]

    def _nutrient_requests(
        self,
        ctx: RunContext,
        stage: StageSpec,
        builder: ReferenceContextBuilder,
        executor: RetryExecutor,
    ) -> List[Tuple[str, FieldRequest]]:
        requests = []
        for field in stage.fields:
            schema = nutrient_response_model(field.key)
            body = nutrient_prompt(ctx.food_name, field)
            if field.uses_reference:
                body = builder.with_reference(body, field.key)

            step = step_label(stage, field)
            if stage.mode == FieldMode.STRICT:
                policy = FieldPolicy.from_settings(
                    salvage=self._salvage(ctx, field, step, schema, executor),
                    mode=FieldMode.STRICT,
                )
            else:
                policy = FieldPolicy.from_settings(
                    default=schema(**{field.key: NutrientValue.zero(field.unit)}),
                    mode=FieldMode.BEST_EFFORT,
                )

            requests.append(
                (field.key, FieldRequest(step=step, prompt=ctx.prompt(body), schema=schema, policy=policy))
            )
        return requests

    def _salvage(
        self,
        ctx: RunContext,
        field: NutrientField,
        step: str,
        schema: type,
        executor: RetryExecutor,
    ) -> Callable[[], Awaitable[BaseModel]]:
        """Narrow `{key: number}` request, wrapped back into the full contract"""

        async def salvage() -> BaseModel:
            answer = await executor.run(
                FieldRequest(
                    step=f"{step} (salvage)",
                    prompt=ctx.prompt(
                        SALVAGE_PROMPT.format(food_name=ctx.food_name, key=field.key, unit=field.unit)
                    ),
                    schema=salvage_response_model(field.key),
                    policy=FieldPolicy.from_settings(retries=1),
                )
            )
            value = NutrientValue(value=getattr(answer, field.key), unit=field.unit)
            return schema(**{field.key: value})

        return salvage

    async def _run_stage(
        self,
        stage: StageSpec,
        requests: List[Tuple[str, FieldRequest]],
        executor: RetryExecutor,
    ) -> Dict[str, Any]:
        """Spawn every request of a stage, join them all, fail fast on the first error."""
        logger.info(f"Stage '{stage.name}': {len(requests)} requests ({stage.mode.value})")
        tasks: Dict[str, asyncio.Task] = {}
        try:
            for key, request in requests:
                self.coordinator.raise_if_cancelled()
                tasks[key] = self.coordinator.spawn(
                    f"{stage.name}:{key}", executor.execute(request)
                )
            await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
            # Settle every sibling and retrieve the exceptions that are not re-raised
            if tasks:
                await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise

        return {key: task.result() for key, task in tasks.items()}

    @staticmethod
    def _finalize(field: NutrientField, response: Optional[BaseModel]) -> NutrientValue:
        if response is None:
            return NutrientValue.zero(field.unit)
        value: NutrientValue = getattr(response, field.key).with_unit_fallback(field.unit)
        if field.clamp is not None:
            value = value.clamped(*field.clamp)
        return value
