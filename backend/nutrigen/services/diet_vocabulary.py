import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from nutrigen.models.database import Diet, session_scope

logger = logging.getLogger(__name__)


class DietVocabulary(Protocol):
    def names(self) -> List[str]:
        ...


class DatabaseDietVocabulary:
    """Diet names from the diets table, alphabetical"""

    def __init__(self, db: Optional[Session] = None):
        self.db = db

    def names(self) -> List[str]:
        with session_scope(self.db) as db:
            rows = db.query(Diet.name).order_by(Diet.name).all()
        names = [name for (name,) in rows if name and name.strip()]
        logger.debug(f"Loaded {len(names)} diets")
        return names


class StaticDietVocabulary:
    def __init__(self, names: Iterable[str]):
        self._names = [n for n in names if n and n.strip()]

    def names(self) -> List[str]:
        return list(self._names)


def filter_diets(answer: Iterable[str], allowed: Sequence[str]) -> List[str]:
    """Keep only allowed diets (case-insensitive), in their canonical spelling."""
    lookup = {name.strip().lower(): name for name in allowed}
    result: List[str] = []
    for raw in answer:
        match = lookup.get(str(raw).strip().lower())
        if match is not None and match not in result:
            result.append(match)
    return result
