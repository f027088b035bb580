# backend/conftest.py
"""
Pytest configuration and fixtures for NutriGen tests
Provides an in-memory database, a scripted generative model and helpers to
build orchestrators without any network access.
"""

import pytest
from typing import Any, Callable, Dict, List, Optional, Tuple, Type
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from pydantic import BaseModel

from nutrigen.core.errors import ModelOutputError
from nutrigen.models.database import Base, Diet, ReferenceFoodRow
from nutrigen.schemas.responses import response_key
from nutrigen.services.batch_orchestrator import BatchOrchestrator
from nutrigen.services.diet_vocabulary import StaticDietVocabulary
from nutrigen.services.nutrient_catalog import FIELDS_BY_KEY
from nutrigen.services.task_coordinator import TaskCoordinator

# ===== DATABASE FIXTURES =====

@pytest.fixture(scope="function")
def test_db():
    """
    Provide a clean test database for each test
    Uses in-memory SQLite for speed
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded_db(test_db):
    """Reference foods + diet vocabulary"""
    test_db.add_all([
        ReferenceFoodRow(
            name="red bell pepper",
            min_age_months=6,
            nutrients={
                "vitaminC": {"value": 250, "unit": "mg"},
                "protein": {"value": 0.99, "unit": "g"},
                "energyKcal": {"value": 31, "unit": "kcal"},
            },
        ),
        ReferenceFoodRow(name="green bell pepper", nutrients={"vitaminC": {"value": 80.4, "unit": "mg"}}),
        ReferenceFoodRow(name="apple juice", nutrients={}),
        Diet(name="Vegan"),
        Diet(name="Keto"),
        Diet(name="Mediterranean"),
    ])
    test_db.commit()
    return test_db


# ===== FAKE MODEL =====

def _default_answer(key: str) -> Any:
    if key == "description":
        return "A crisp, sweet vegetable."
    if key == "min_age_months":
        return 6
    if key == "categories":
        return ["Vegetables and Vegetable Products"]
    if key == "allergens":
        return []
    if key == "diets":
        return ["vegan"]
    if key == "best_match":
        return None
    if key == "weightG":
        return {"value": 100, "unit": "g"}
    field = FIELDS_BY_KEY.get(key)
    if field is not None:
        return {"value": 1.5, "unit": field.unit}
    raise KeyError(key)


class ScriptedModel:
    """
    Generative model stand-in.

    Answers by the single key of the requested contract. `answers[key]` may be a
    value or a callable `(prompt) -> value`; `failures[key]` makes the first N
    calls for that key raise ModelOutputError (use a large N for "always").
    Salvage contracts are addressed as `"<key>:salvage"`.
    """

    def __init__(
        self,
        answers: Optional[Dict[str, Any]] = None,
        failures: Optional[Dict[str, int]] = None,
    ):
        self.answers = dict(answers or {})
        self.failures = dict(failures or {})
        self.calls: List[Tuple[str, str, int]] = []
        self.sessions: List[str] = []

    def new_session(self, instructions: str) -> "ScriptedSession":
        self.sessions.append(instructions)
        return ScriptedSession(self)

    def prompts_for(self, key: str) -> List[str]:
        return [prompt for k, prompt, _ in self.calls if k == key]

    def tokens_for(self, key: str) -> List[int]:
        return [tokens for k, _, tokens in self.calls if k == key]

    def count(self, key: str) -> int:
        return len(self.prompts_for(key))

    def answer(self, prompt: str, schema: Type[BaseModel], max_tokens: int) -> BaseModel:
        key = response_key(schema)
        salvage = schema.__name__.endswith("SalvageResponse")
        slot = f"{key}:salvage" if salvage else key
        self.calls.append((slot, prompt, max_tokens))

        if self.failures.get(slot, 0) > 0:
            self.failures[slot] -= 1
            raise ModelOutputError(f"scripted failure for {slot}")

        if slot in self.answers:
            value = self.answers[slot]
        elif salvage and key in self.answers:
            value = self.answers[key]
        else:
            value = _default_answer(key)

        if callable(value):
            value = value(prompt)
        if salvage and isinstance(value, dict):
            value = value["value"]
        return schema.model_validate({key: value})


class ScriptedSession:
    def __init__(self, model: ScriptedModel):
        self.model = model

    async def respond(self, prompt: str, schema: Type[BaseModel], max_tokens: int) -> BaseModel:
        return self.model.answer(prompt, schema, max_tokens)


class StaticSearch:
    def __init__(self, candidates=None, error: Optional[Exception] = None):
        self.candidates = list(candidates or [])
        self.error = error
        self.queries: List[Tuple[str, int]] = []

    async def search(self, query: str, limit: int):
        self.queries.append((query, limit))
        if self.error is not None:
            raise self.error
        return self.candidates[:limit]


class RecordingSleep:
    """Zero-delay replacement for asyncio.sleep that remembers the delays"""

    def __init__(self, hook: Optional[Callable[[float], None]] = None):
        self.delays: List[float] = []
        self.hook = hook

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.hook is not None:
            self.hook(seconds)


@pytest.fixture
def scripted_model():
    return ScriptedModel()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def make_orchestrator(no_sleep):
    """Build an orchestrator over a scripted model with a zero-delay sleep"""

    def _make(
        model: ScriptedModel,
        candidates=None,
        diets=("Vegan", "Keto", "Mediterranean"),
        coordinator: Optional[TaskCoordinator] = None,
    ) -> BatchOrchestrator:
        return BatchOrchestrator(
            model=model,
            search=StaticSearch(candidates),
            diets=StaticDietVocabulary(diets),
            coordinator=coordinator or TaskCoordinator(),
            sleep=no_sleep,
        )

    return _make
