"""
Retry executor for single-field generation requests.

Each attempt:
1. checks the run's cancellation flag
2. opens a FRESH model session (no carry-over between attempts)
3. asks with a token budget of `max_tokens * attempt`

On failure the field is salvaged (narrow schema) once `salvage_after`
attempts have failed, otherwise it backs off exponentially and tries again.
What happens after the last attempt depends on the caller: `run` fails hard,
`run_or_none` / `run_or_default` degrade.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Type

from pydantic import BaseModel

from nutrigen.core.config import settings
from nutrigen.core.errors import FieldGenerationError
from nutrigen.core.observability import log_step
from nutrigen.services.llm_client import GenerativeModel
from nutrigen.services.nutrient_catalog import FieldMode
from nutrigen.services.task_coordinator import TaskCoordinator

logger = logging.getLogger(__name__)

BACKOFF_FACTOR = 1.8


@dataclass(frozen=True)
class FieldPolicy:
    retries: int = 5
    backoff_ms: int = 400
    salvage_after: int = 3
    max_tokens: int = 64
    salvage: Optional[Callable[[], Awaitable[Any]]] = None
    default: Any = None
    mode: FieldMode = FieldMode.STRICT

    @classmethod
    def from_settings(cls, **overrides) -> "FieldPolicy":
        values = {
            "retries": settings.field_max_retries,
            "backoff_ms": settings.field_backoff_ms,
            "salvage_after": settings.field_salvage_after,
            "max_tokens": settings.field_base_tokens,
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class FieldRequest:
    step: str
    prompt: str
    schema: Type[BaseModel]
    policy: FieldPolicy = FieldPolicy()


def backoff_delay_ms(attempt: int, backoff_ms: int, max_delay_ms: int = 60_000) -> int:
    """Delay after failed attempt `attempt` (1-based): backoff * 1.8^(attempt-1), capped"""
    return int(min(max_delay_ms, backoff_ms * BACKOFF_FACTOR ** (attempt - 1)))


class RetryExecutor:
    def __init__(
        self,
        model: GenerativeModel,
        coordinator: TaskCoordinator,
        instructions: str,
        on_log: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_delay_ms: Optional[int] = None,
    ):
        self.model = model
        self.coordinator = coordinator
        self.instructions = instructions
        self.on_log = on_log
        self.sleep = sleep
        self.max_delay_ms = settings.backoff_max_delay_ms if max_delay_ms is None else max_delay_ms

    def _emit(self, message: str) -> None:
        if self.on_log:
            self.on_log(message)

    async def run(self, request: FieldRequest) -> Any:
        """Fail-hard execution: exhaustion raises FieldGenerationError."""
        policy = request.policy
        total = policy.retries + 1
        last_error: Optional[BaseException] = None

        for attempt in range(1, total + 1):
            self.coordinator.raise_if_cancelled()

            if attempt == 1:
                self._emit(f"-> {request.step} ...")
            else:
                self._emit(f"retry {request.step} {attempt}/{total}")

            session = self.model.new_session(self.instructions)
            try:
                result = await session.respond(
                    request.prompt, request.schema, policy.max_tokens * attempt
                )
            except asyncio.CancelledError:
                log_step(
                    logger, logging.INFO, f"{request.step} cancelled",
                    step=request.step, attempt=attempt, outcome="cancelled",
                )
                raise
            except Exception as e:
                last_error = e
                log_step(
                    logger, logging.WARNING,
                    f"{request.step} failed on attempt {attempt}: {str(e)}",
                    step=request.step, attempt=attempt, outcome="retry",
                )
                self._emit(f"{request.step} failed on attempt {attempt}: {str(e)}")

                if policy.salvage is not None and attempt >= policy.salvage_after:
                    log_step(
                        logger, logging.INFO, f"{request.step}: switching to salvage mode",
                        step=request.step, attempt=attempt, outcome="salvage",
                    )
                    self._emit(f"{request.step}: switching to salvage mode (narrow schema)")
                    return await policy.salvage()

                if attempt < total:
                    delay_ms = backoff_delay_ms(attempt, policy.backoff_ms, self.max_delay_ms)
                    await self.sleep(delay_ms / 1000)
                continue

            log_step(
                logger, logging.DEBUG, f"{request.step} ok (attempt {attempt})",
                step=request.step, attempt=attempt, outcome="success",
            )
            self._emit(f"{request.step} ok (attempt {attempt})")
            return result

        log_step(
            logger, logging.ERROR, f"{request.step} exhausted {total} attempts",
            step=request.step, attempt=total, outcome="exhausted",
        )
        raise FieldGenerationError(request.step, total, last_error) from last_error

    async def run_or_none(self, request: FieldRequest) -> Any:
        """Best-effort execution: exhaustion returns None."""
        try:
            return await self.run(request)
        except Exception as e:
            logger.warning(f"{request.step} gave up, continuing without it: {str(e)}")
            self._emit(f"{request.step} exhausted {request.policy.retries + 1} attempts -> nil")
            return None

    async def run_or_default(self, request: FieldRequest) -> Any:
        """Best-effort execution: exhaustion returns `policy.default`."""
        result = await self.run_or_none(request)
        return request.policy.default if result is None else result

    async def execute(self, request: FieldRequest) -> Any:
        """Dispatch on the policy mode."""
        if request.policy.mode == FieldMode.BEST_EFFORT:
            return await self.run_or_default(request)
        return await self.run(request)
