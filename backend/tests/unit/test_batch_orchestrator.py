"""
Tests for the full generation run over a scripted model
"""

import asyncio
import gc
import pytest

from conftest import ScriptedModel
from nutrigen.core.errors import FieldGenerationError, WeightInvariantError
from nutrigen.schemas.nutrition import NutrientValue, ReferenceFood
from nutrigen.services.nutrient_catalog import ALL_FIELDS, STAGES
from nutrigen.services.task_coordinator import TaskCoordinator

PEPPER = ReferenceFood(
    name="red bell pepper",
    nutrients={
        "vitaminC": NutrientValue(value=250, unit="mg"),
        "protein": NutrientValue(value=0.99, unit=""),
    },
    min_age_months=6,
)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_complete_record(self, make_orchestrator):
        model = ScriptedModel(answers={"protein": {"value": 0.99, "unit": "g"}})

        record = await make_orchestrator(model).generate("lentils")

        assert record.name == "lentils"
        assert record.description
        assert record.min_age_months == 6
        assert record.categories == ["Vegetables and Vegetable Products"]
        assert record.diets == ["Vegan"]
        assert record.reference_food is None
        assert record.nutrition.macronutrients["protein"].value == pytest.approx(0.99)
        assert record.nutrition.other["weightG"] == NutrientValue(value=100, unit="g")
        for field in ALL_FIELDS:
            assert field.key in record.nutrition.group(field.group)

    @pytest.mark.asyncio
    async def test_every_field_is_requested_once(self, make_orchestrator):
        model = ScriptedModel()

        await make_orchestrator(model).generate("lentils")

        for field in ALL_FIELDS:
            assert model.count(field.key) == 1, field.key
        # description + 4 identity fields + every nutrient
        assert len(model.calls) == 1 + 4 + len(ALL_FIELDS)

    @pytest.mark.asyncio
    async def test_description_runs_first_and_seeds_identity_prefix(self, make_orchestrator):
        model = ScriptedModel()

        await make_orchestrator(model).generate("lentils")

        assert model.calls[0][0] == "description"
        for key, prompt, _ in model.calls[1:]:
            assert prompt.startswith("Food identity (STRICT"), key
            assert "EXACT name (do not reinterpret or generalize): lentils" in prompt

    @pytest.mark.asyncio
    async def test_stage_hook_reports_progress_in_order(self, make_orchestrator):
        seen = []

        await make_orchestrator(ScriptedModel()).generate(
            "lentils", on_stage=lambda name, index, total: seen.append((name, index, total))
        )

        assert seen == [(stage.name, i, len(STAGES)) for i, stage in enumerate(STAGES, start=1)]

    @pytest.mark.asyncio
    async def test_on_log_receives_progress(self, make_orchestrator):
        lines = []

        await make_orchestrator(ScriptedModel()).generate("lentils", on_log=lines.append)

        assert lines[0].startswith("Starting AI data generation")
        assert any("Description" in line for line in lines)


class TestFieldRules:
    @pytest.mark.asyncio
    async def test_diets_filtered_to_vocabulary_in_canonical_spelling(self, make_orchestrator):
        model = ScriptedModel(answers={"diets": ["VEGAN", "paleo", "keto", "Vegan"]})

        record = await make_orchestrator(model).generate("avocado")

        assert record.diets == ["Vegan", "Keto"]
        prompt = model.prompts_for("diets")[0]
        assert "Vegan, Keto, Mediterranean" in prompt

    @pytest.mark.asyncio
    async def test_empty_diet_vocabulary_skips_diet_request(self, make_orchestrator):
        model = ScriptedModel()

        record = await make_orchestrator(model, diets=()).generate("avocado")

        assert record.diets == []
        assert model.count("diets") == 0

    @pytest.mark.asyncio
    async def test_ph_is_clamped(self, make_orchestrator):
        model = ScriptedModel(answers={"alkalinityPH": {"value": 15.2, "unit": "pH"}})

        record = await make_orchestrator(model).generate("lemon")

        assert record.nutrition.other["alkalinityPH"].value == 14.0

    @pytest.mark.asyncio
    async def test_empty_unit_is_replaced_with_catalog_unit(self, make_orchestrator):
        model = ScriptedModel(answers={"calcium": {"value": 12, "unit": ""}})

        record = await make_orchestrator(model).generate("lemon")

        assert record.nutrition.minerals["calcium"] == NutrientValue(value=12, unit="mg")

    @pytest.mark.asyncio
    async def test_strict_field_is_salvaged_with_narrow_schema(self, make_orchestrator):
        model = ScriptedModel(
            failures={"vitaminC": 100},
            answers={"vitaminC:salvage": 53},
        )

        record = await make_orchestrator(model).generate("lemon")

        assert model.count("vitaminC") == 3
        assert model.count("vitaminC:salvage") == 1
        assert record.nutrition.vitamins["vitaminC"] == NutrientValue(value=53, unit="mg")

    @pytest.mark.asyncio
    async def test_best_effort_field_exhaustion_yields_zero_and_run_continues(self, make_orchestrator):
        model = ScriptedModel(failures={"sfa4_0": 100})

        record = await make_orchestrator(model).generate("lemon")

        assert model.count("sfa4_0") == 6
        assert model.count("sfa4_0:salvage") == 0
        assert record.nutrition.lipids["sfa4_0"] == NutrientValue(value=0, unit="g")
        assert record.nutrition.sterols["phytosterols"].value == 1.5

    @pytest.mark.asyncio
    async def test_strict_field_failure_fails_the_run(self, make_orchestrator):
        model = ScriptedModel(failures={"protein": 100, "protein:salvage": 100})

        with pytest.raises(FieldGenerationError):
            await make_orchestrator(model).generate("lemon")

        # later stages never start
        assert model.count("alcoholEthyl") == 0

    @pytest.mark.asyncio
    async def test_negative_salvage_answer_is_retried_then_fails_in_taxonomy(self, make_orchestrator):
        model = ScriptedModel(
            failures={"vitaminC": 100},
            answers={"vitaminC:salvage": -3},
        )

        with pytest.raises(FieldGenerationError) as exc_info:
            await make_orchestrator(model).generate("lemon")

        assert model.count("vitaminC:salvage") == 2
        assert "(salvage)" in exc_info.value.step

    @pytest.mark.asyncio
    async def test_several_failing_siblings_leave_no_unretrieved_exceptions(self, make_orchestrator):
        loop = asyncio.get_running_loop()
        reported = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        model = ScriptedModel(failures={
            "protein": 100, "protein:salvage": 100,
            "fat": 100, "fat:salvage": 100,
        })

        try:
            with pytest.raises(FieldGenerationError):
                await make_orchestrator(model).generate("lemon")
            await asyncio.sleep(0)
            gc.collect()
        finally:
            loop.set_exception_handler(previous)

        assert reported == []

    @pytest.mark.asyncio
    async def test_strict_identity_failure_fails_the_run(self, make_orchestrator):
        model = ScriptedModel(failures={"categories": 100})

        with pytest.raises(FieldGenerationError) as exc_info:
            await make_orchestrator(model).generate("lemon")

        assert exc_info.value.step == "Categories"
        assert model.count("carbohydrates") == 0


class TestWeightInvariant:
    @pytest.mark.asyncio
    async def test_exact_weight_needs_no_second_request(self, make_orchestrator):
        model = ScriptedModel()

        await make_orchestrator(model).generate("lentils")

        assert model.count("weightG") == 1

    @pytest.mark.asyncio
    async def test_wrong_weight_is_retried_once(self, make_orchestrator):
        answers = iter([{"value": 90, "unit": "g"}, {"value": 100, "unit": "g"}])
        model = ScriptedModel(answers={"weightG": lambda prompt: next(answers)})

        record = await make_orchestrator(model).generate("lentils")

        assert model.count("weightG") == 2
        assert record.nutrition.other["weightG"].value == 100

    @pytest.mark.asyncio
    async def test_empty_weight_unit_is_not_filled_before_validation(self, make_orchestrator):
        answers = iter([{"value": 100, "unit": ""}, {"value": 100, "unit": "g"}])
        model = ScriptedModel(answers={"weightG": lambda prompt: next(answers)})

        record = await make_orchestrator(model).generate("lentils")

        assert model.count("weightG") == 2
        assert "exactly 100" in model.prompts_for("weightG")[1]
        assert record.nutrition.other["weightG"] == NutrientValue(value=100, unit="g")

    @pytest.mark.asyncio
    async def test_weight_without_unit_after_strict_retry_fails_run(self, make_orchestrator):
        model = ScriptedModel(answers={"weightG": {"value": 100, "unit": ""}})

        with pytest.raises(WeightInvariantError):
            await make_orchestrator(model).generate("lentils")

        assert model.count("weightG") == 2

    @pytest.mark.asyncio
    async def test_persistently_wrong_weight_fails_run(self, make_orchestrator):
        model = ScriptedModel(answers={"weightG": {"value": 90, "unit": "g"}})

        with pytest.raises(WeightInvariantError):
            await make_orchestrator(model).generate("lentils")

        assert model.count("weightG") == 2
        assert model.count("vitaminC") == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_after_second_stage_spawns_nothing_later(self, make_orchestrator):
        coordinator = TaskCoordinator()
        model = ScriptedModel()

        def on_stage(name, index, total):
            if name == "macronutrients":
                coordinator.cancel_all()

        orchestrator = make_orchestrator(model, coordinator=coordinator)
        with pytest.raises(asyncio.CancelledError):
            await orchestrator.generate("lentils", on_stage=on_stage)

        assert model.count("protein") == 1
        for stage in STAGES[2:]:
            for field in stage.fields:
                assert model.count(field.key) == 0, field.key
        assert all(not h.name.startswith("other:") for h in coordinator.handles)

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, make_orchestrator):
        coordinator = TaskCoordinator()
        coordinator.cancel_all()
        model = ScriptedModel()

        with pytest.raises(asyncio.CancelledError):
            await make_orchestrator(model, coordinator=coordinator).generate("lentils")

        assert model.calls == []

    @pytest.mark.asyncio
    async def test_in_flight_retries_stop_at_next_checkpoint(self, make_orchestrator, no_sleep):
        coordinator = TaskCoordinator()
        model = ScriptedModel(failures={"fat": 100})
        no_sleep.hook = lambda _: coordinator.cancel_all()

        with pytest.raises(asyncio.CancelledError):
            await make_orchestrator(model, coordinator=coordinator).generate("lentils")

        assert model.count("fat") == 1
        assert model.count("fat:salvage") == 0


class TestReferenceContext:
    @pytest.mark.asyncio
    async def test_end_to_end_bucket_hint_without_stored_number(self, make_orchestrator):
        model = ScriptedModel(answers={"best_match": "red bell pepper"})

        record = await make_orchestrator(model, candidates=[PEPPER]).generate("raw red bell pepper")

        assert record.reference_food == "red bell pepper"
        vitamin_c_prompt = model.prompts_for("vitaminC")[0]
        assert "suggests this nutrient is high" in vitamin_c_prompt
        assert "250" not in vitamin_c_prompt

    @pytest.mark.asyncio
    async def test_reference_without_unit_gives_no_hint(self, make_orchestrator):
        model = ScriptedModel(answers={"best_match": "red bell pepper"})

        await make_orchestrator(model, candidates=[PEPPER]).generate("raw red bell pepper")

        assert "CONTEXT" not in model.prompts_for("protein")[0]
        assert "CONTEXT" not in model.prompts_for("weightG")[0]

    @pytest.mark.asyncio
    async def test_reference_notes_on_identity_prompts(self, make_orchestrator):
        model = ScriptedModel(answers={"best_match": "red bell pepper"})

        await make_orchestrator(model, candidates=[PEPPER]).generate("raw red bell pepper")

        assert "Do NOT copy its description" in model.prompts_for("description")[0]
        assert "min_age_months = 6" in model.prompts_for("min_age_months")[0]

    @pytest.mark.asyncio
    async def test_rejected_reference_becomes_diagnostic(self, make_orchestrator):
        model = ScriptedModel(answers={"best_match": "chili"})

        record = await make_orchestrator(model, candidates=[PEPPER]).generate("raw red bell pepper")

        assert record.reference_food is None
        assert record.diagnostics == ["reference answer 'chili' is not a candidate"]
        assert "CONTEXT" not in model.prompts_for("vitaminC")[0]
