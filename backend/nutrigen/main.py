from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from nutrigen.api import food_generation
from nutrigen.core.config import settings
from nutrigen.core.observability import configure_logging
from nutrigen.models.database import init_db
import logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    # Startup: make sure reference_foods and diets exist
    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        raise

    yield

    # Shutdown: stop background generations
    manager = food_generation.get_job_manager()
    for job in manager.list_jobs():
        manager.cancel(job.job_id)
    logger.info("Generation jobs cancelled")


app = FastAPI(
    title="NutriGen API",
    description="AI-generated nutrition records for any food name",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(food_generation.router, prefix="/api")


@app.get("/")
def root():
    return {
        "name": "NutriGen API",
        "version": "1.0.0",
        "status": "operational"
    }

@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.environment,
        "llm_model": settings.llm_model,
    }
