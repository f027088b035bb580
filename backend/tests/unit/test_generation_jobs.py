"""
Tests for run-level retry and the background job manager
"""

import asyncio
import pytest

from conftest import RecordingSleep, ScriptedModel, StaticSearch
from nutrigen.core.errors import FieldGenerationError, WeightInvariantError
from nutrigen.services.batch_orchestrator import BatchOrchestrator
from nutrigen.services.diet_vocabulary import StaticDietVocabulary
from nutrigen.services.generation_jobs import (
    RUN_JITTER_MS,
    GenerationJobManager,
    JobStatus,
    generate_details_or_none,
    generate_details_retrying,
    run_backoff_ms,
)
from nutrigen.services.task_coordinator import TaskCoordinator


class BlockingSearch(StaticSearch):
    """Search that never returns until released"""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def search(self, query, limit):
        self.entered.set()
        await self.release.wait()
        return []


def orchestrator_factory(model, search=None):
    def factory(coordinator: TaskCoordinator) -> BatchOrchestrator:
        return BatchOrchestrator(
            model=model,
            search=search or StaticSearch(),
            diets=StaticDietVocabulary(["Vegan"]),
            coordinator=coordinator,
            sleep=RecordingSleep(),
        )

    return factory


class TestRunBackoff:
    def test_grows_and_caps_with_jitter(self):
        for attempt, base in [(1, 600), (2, 1080), (3, 1944), (20, 30_000)]:
            delay = run_backoff_ms(attempt, 600)
            assert base - 1 <= delay <= base + RUN_JITTER_MS


class TestGenerateDetailsRetrying:
    @pytest.mark.asyncio
    async def test_failed_run_is_retried(self, make_orchestrator):
        model = ScriptedModel(failures={"description": 6})
        sleep = RecordingSleep()

        record = await generate_details_retrying(
            make_orchestrator(model), "lentils", attempts=3, base_backoff_ms=600, sleep=sleep
        )

        assert record.name == "lentils"
        assert model.count("description") == 7
        assert len(sleep.delays) == 1
        assert 0.6 <= sleep.delays[0] <= 0.6 + RUN_JITTER_MS / 1000

    @pytest.mark.asyncio
    async def test_exhausted_runs_raise_last_error(self, make_orchestrator):
        model = ScriptedModel(failures={"description": 100})
        sleep = RecordingSleep()

        with pytest.raises(FieldGenerationError):
            await generate_details_retrying(make_orchestrator(model), "lentils", attempts=2, sleep=sleep)

        assert model.count("description") == 12
        assert len(sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_weight_invariant_is_never_retried(self, make_orchestrator):
        model = ScriptedModel(answers={"weightG": {"value": 50, "unit": "g"}})
        sleep = RecordingSleep()

        with pytest.raises(WeightInvariantError):
            await generate_details_retrying(make_orchestrator(model), "lentils", attempts=3, sleep=sleep)

        assert model.count("description") == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_cancelled_coordinator_stops_retrying(self, make_orchestrator):
        coordinator = TaskCoordinator()
        coordinator.cancel_all()
        model = ScriptedModel()

        with pytest.raises(asyncio.CancelledError):
            await generate_details_retrying(
                make_orchestrator(model, coordinator=coordinator), "lentils", attempts=3,
                sleep=RecordingSleep(),
            )

        assert model.calls == []

    @pytest.mark.asyncio
    async def test_or_none_swallows_exhaustion(self, make_orchestrator):
        model = ScriptedModel(failures={"description": 100})

        result = await generate_details_or_none(
            make_orchestrator(model), "lentils", attempts=1, sleep=RecordingSleep()
        )

        assert result is None


class TestGenerationJobManager:
    @pytest.mark.asyncio
    async def test_job_completes_with_progress(self):
        manager = GenerationJobManager(orchestrator_factory(ScriptedModel()), attempts=1)

        job = manager.start("lentils")
        assert job.status in (JobStatus.PENDING, JobStatus.RUNNING)

        job = await manager.wait(job.job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 1.0
        assert job.stage == "sterols"
        assert job.result.name == "lentils"
        assert job.finished_at is not None

    @pytest.mark.asyncio
    async def test_job_failure_keeps_error_code(self):
        model = ScriptedModel(answers={"weightG": {"value": 90, "unit": "g"}})
        manager = GenerationJobManager(orchestrator_factory(model), attempts=3)

        job = await manager.wait(manager.start("lentils").job_id)

        assert job.status == JobStatus.FAILED
        assert job.error_code == 1012
        assert job.result is None
        assert model.count("weightG") == 2

    @pytest.mark.asyncio
    async def test_cancel_running_job(self):
        search = BlockingSearch()
        model = ScriptedModel()
        manager = GenerationJobManager(orchestrator_factory(model, search), attempts=1)

        job = manager.start("lentils")
        await search.entered.wait()

        cancelled = manager.cancel(job.job_id)
        settled = await manager.wait(job.job_id)

        assert cancelled.status == JobStatus.CANCELLED
        assert settled.status == JobStatus.CANCELLED
        assert settled.result is None
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_cancel_finished_job_keeps_status(self):
        manager = GenerationJobManager(orchestrator_factory(ScriptedModel()), attempts=1)
        job = await manager.wait(manager.start("lentils").job_id)

        assert manager.cancel(job.job_id).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        manager = GenerationJobManager(orchestrator_factory(ScriptedModel()))

        assert manager.get("missing") is None
        assert manager.cancel("missing") is None
        assert await manager.wait("missing") is None

    @pytest.mark.asyncio
    async def test_oldest_finished_jobs_are_evicted_beyond_history_limit(self):
        manager = GenerationJobManager(orchestrator_factory(ScriptedModel()), attempts=1, history_limit=1)

        first = await manager.wait(manager.start("lentils").job_id)
        second = await manager.wait(manager.start("quinoa").job_id)
        third = manager.start("barley")

        assert manager.get(first.job_id) is None
        assert manager.cancel(first.job_id) is None
        assert manager.get(second.job_id) is not None
        assert manager.get(third.job_id) is not None
        assert len(manager.list_jobs()) == 2

        await manager.wait(third.job_id)

    @pytest.mark.asyncio
    async def test_running_jobs_are_never_evicted(self):
        search = BlockingSearch()
        manager = GenerationJobManager(orchestrator_factory(ScriptedModel(), search), attempts=1,
                                       history_limit=0)

        running = manager.start("lentils")
        await search.entered.wait()
        queued = manager.start("quinoa")

        assert manager.get(running.job_id) is not None

        search.release.set()
        await manager.wait(running.job_id)
        await manager.wait(queued.job_id)

    @pytest.mark.asyncio
    async def test_list_jobs_newest_first(self):
        manager = GenerationJobManager(orchestrator_factory(ScriptedModel()), attempts=1)
        first = manager.start("lentils")
        await asyncio.sleep(0.001)
        second = manager.start("quinoa")

        assert [j.job_id for j in manager.list_jobs()] == [second.job_id, first.job_id]

        await manager.wait(first.job_id)
        await manager.wait(second.job_id)
