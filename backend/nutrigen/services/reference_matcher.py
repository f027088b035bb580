"""
Reference matcher - picks at most one stored food as plausibility context

Flow:
1. Fetch up to N candidates from the search collaborator
2. Ask the model (one attempt, fresh session) for the single near-identical name
3. Accept the answer only if it is literally one of the candidate names

Every failure degrades to "no reference" with a soft diagnostic; only
cancellation propagates.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from nutrigen.core.config import settings
from nutrigen.schemas.nutrition import ReferenceFood
from nutrigen.schemas.responses import BestMatchResponse
from nutrigen.services.food_search import FoodSearch
from nutrigen.services.retry_executor import FieldPolicy, FieldRequest, RetryExecutor

logger = logging.getLogger(__name__)

SELECTION_PROMPT = """From the list below, which is the SINGLE most semantically similar and appropriate food item to be used as a nutritional reference for "{food_name}"?

CRITICAL:
- The match must be extremely close. For example, "apple" and "apple juice" are NOT good matches. "Raw chicken breast" and "cooked chicken breast" are NOT good matches.
- If no item in the list is a very close match, return null for the 'best_match' field.
- Respond ONLY with the exact name from the list. Do not invent new names.

Candidate Names:
{candidates}"""


@dataclass
class MatchResult:
    reference: Optional[ReferenceFood] = None
    diagnostics: List[str] = field(default_factory=list)


class ReferenceMatcher:
    def __init__(
        self,
        search: FoodSearch,
        executor: RetryExecutor,
        limit: Optional[int] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ):
        self.search = search
        self.executor = executor
        self.limit = limit or settings.reference_candidate_limit
        self.on_log = on_log

    def _emit(self, message: str) -> None:
        logger.info(message)
        if self.on_log:
            self.on_log(message)

    async def match(self, food_name: str) -> MatchResult:
        result = MatchResult()
        self._emit(f"Fetching up to {self.limit} potential reference foods for '{food_name}'")

        try:
            candidates = await self.search.search(food_name, self.limit)
        except Exception as e:
            logger.warning(f"Reference search failed for '{food_name}': {str(e)}")
            result.diagnostics.append(f"reference search failed: {str(e)}")
            return result

        candidates = candidates[: self.limit]
        if not candidates:
            self._emit(f"No similar foods found for '{food_name}'")
            return result

        names = [c.name for c in candidates]
        request = FieldRequest(
            step="Reference match",
            prompt=SELECTION_PROMPT.format(
                food_name=food_name,
                candidates="\n".join(f"- {name}" for name in names),
            ),
            schema=BestMatchResponse,
            policy=FieldPolicy(retries=0, max_tokens=128),
        )

        try:
            answer: BestMatchResponse = await self.executor.run(request)
        except Exception as e:
            logger.warning(f"Reference selection failed for '{food_name}': {str(e)}")
            result.diagnostics.append(f"reference selection failed: {str(e)}")
            return result

        best = (answer.best_match or "").strip()
        if not best:
            self._emit("Model found no close reference among the candidates")
            result.diagnostics.append("no close reference food among candidates")
            return result

        by_name = {c.name: c for c in candidates}
        if best not in by_name:
            self._emit(f"Model returned '{best}', which is not a candidate. Proceeding without reference.")
            result.diagnostics.append(f"reference answer '{best}' is not a candidate")
            return result

        result.reference = by_name[best]
        self._emit(f"Selected reference food: '{best}'")
        return result
