# backend/nutrigen/api/food_generation.py
"""
API endpoints for AI food detail generation
"""

import logging
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from nutrigen.core.errors import GenerationError, WeightInvariantError
from nutrigen.schemas.nutrition import FoodDetailRecord, FoodGenerationRequest
from nutrigen.services.batch_orchestrator import BatchOrchestrator
from nutrigen.services.diet_vocabulary import DatabaseDietVocabulary
from nutrigen.services.food_search import FDCFoodSearch, LocalFoodSearch
from nutrigen.services.generation_jobs import (
    GenerationJob,
    GenerationJobManager,
    JobStatus,
    OrchestratorFactory,
    generate_details_retrying,
)
from nutrigen.services.llm_client import LLMClient
from nutrigen.services.task_coordinator import TaskCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/food-generation", tags=["Food Generation"])


class JobCreatedResponse(BaseModel):
    job_id: str
    status: JobStatus


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    return LLMClient.from_settings()


def default_orchestrator_factory(coordinator: TaskCoordinator) -> BatchOrchestrator:
    """Orchestrator over the configured LLM, FDC (local fallback) and the diets table"""
    return BatchOrchestrator(
        model=get_llm_client(),
        search=FDCFoodSearch(fallback=LocalFoodSearch()),
        diets=DatabaseDietVocabulary(),
        coordinator=coordinator,
    )


def get_orchestrator_factory() -> OrchestratorFactory:
    return default_orchestrator_factory


@lru_cache(maxsize=1)
def get_job_manager() -> GenerationJobManager:
    return GenerationJobManager(default_orchestrator_factory)


@router.post("/generate", response_model=FoodDetailRecord)
async def generate_food(
    request: FoodGenerationRequest,
    factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    """Generate a complete food record and wait for it"""
    orchestrator = factory(TaskCoordinator())
    try:
        return await generate_details_retrying(orchestrator, request.food_name)
    except WeightInvariantError as e:
        logger.error(f"Generation for '{request.food_name}' rejected: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "code": e.code},
        )
    except GenerationError as e:
        logger.error(f"Generation for '{request.food_name}' failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(e), "code": e.code},
        )


@router.post("/jobs", response_model=JobCreatedResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(
    request: FoodGenerationRequest,
    manager: GenerationJobManager = Depends(get_job_manager),
):
    """Start a background generation"""
    job = manager.start(request.food_name)
    return JobCreatedResponse(job_id=job.job_id, status=job.status)


@router.get("/jobs", response_model=List[GenerationJob])
async def list_jobs(manager: GenerationJobManager = Depends(get_job_manager)):
    return manager.list_jobs()


@router.get("/jobs/{job_id}", response_model=GenerationJob)
async def get_job(job_id: str, manager: GenerationJobManager = Depends(get_job_manager)):
    job = manager.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.delete("/jobs/{job_id}", response_model=GenerationJob)
async def cancel_job(job_id: str, manager: GenerationJobManager = Depends(get_job_manager)):
    job = manager.cancel(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
