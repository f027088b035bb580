# backend/nutrigen/core/errors.py
"""
Error taxonomy for food detail generation.

- ModelOutputError: transient model/parse failure, retried per field
- FieldGenerationError: a fail-hard field exhausted every attempt
- WeightInvariantError: weightG is not exactly 100 g after the strict retry
- GenerationCancelled: cooperative cancellation, never retried
"""

import asyncio
from typing import Optional


class GenerationError(Exception):
    """Base class for all generation failures"""

    code: int = -1

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ModelOutputError(GenerationError):
    """Model returned nothing usable (bad JSON, schema mismatch, API error)"""

    code = 1001


class FieldGenerationError(GenerationError):
    """A fail-hard field exhausted all of its attempts"""

    code = 1002

    def __init__(self, step: str, attempts: int, last_error: Optional[BaseException]):
        self.step = step
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{step} failed after {attempts} attempts: {last_error}")


class WeightInvariantError(GenerationError):
    """weightG must be exactly 100 g; never retried or defaulted"""

    code = 1012

    def __init__(self, value: float, unit: str):
        self.value = value
        self.unit = unit
        super().__init__(f"Invalid weightG {value} {unit!r}, must be exactly 100 g.")


class GenerationCancelled(asyncio.CancelledError):
    """Raised at a cooperative checkpoint after the run was cancelled"""


def is_retryable_run_error(exc: BaseException) -> bool:
    """Whether a whole generation run may be attempted again after `exc`"""
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, WeightInvariantError):
        return False
    return isinstance(exc, Exception)
