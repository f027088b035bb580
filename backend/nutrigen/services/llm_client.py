"""
LLM Client - generative model boundary for food detail generation

The orchestrator only sees two things:
- GenerativeModel.new_session(instructions) -> ModelSession
- ModelSession.respond(prompt, schema, max_tokens) -> schema instance

Every attempt opens a new session, so no conversation state is carried from
one attempt to the next. LLMClient implements the boundary over:
- Anthropic Claude (messages API)
- OpenAI (chat completions, JSON mode)

Responses are parsed as JSON and validated with pydantic; anything unusable
raises ModelOutputError, which the retry executor treats as transient.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from nutrigen.core.config import settings
from nutrigen.core.errors import ModelOutputError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


# Pricing per 1M tokens (input/output) - for internal logging only
MODEL_PRICING = {
    "claude-3-5-haiku-latest": (0.8, 4.0),
    "claude-sonnet-4-5": (3.0, 15.0),
    "gpt-4o-mini": (0.15, 0.6),
    "gpt-4o": (2.5, 10.0),
}


@dataclass
class LLMResponse:
    """Raw response from the provider with metadata"""
    text: str
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: int = 0


class ModelSession(Protocol):
    async def respond(self, prompt: str, schema: Type[T], max_tokens: int) -> T:
        ...


class GenerativeModel(Protocol):
    def new_session(self, instructions: str) -> ModelSession:
        ...


def extract_json(text: Optional[str]) -> str:
    """Strip markdown fences and surrounding prose from a JSON answer"""
    if not text:
        raise ModelOutputError("Empty response from model")

    cleaned = _FENCE.sub("", text.strip()).strip()
    if cleaned.startswith("{"):
        return cleaned

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ModelOutputError(f"No JSON object in response: {cleaned[:80]!r}")
    return cleaned[start:end + 1]


def parse_response(text: Optional[str], schema: Type[T]) -> T:
    """Validate a raw model answer against a response contract."""
    payload = extract_json(text)
    try:
        return schema.model_validate_json(payload)
    except ValidationError as e:
        raise ModelOutputError(
            f"{schema.__name__} validation failed: {e.errors()[0].get('msg', str(e))}"
        ) from e


def schema_instructions(instructions: str, schema: Type[BaseModel]) -> str:
    """Append the JSON schema of the target contract to the session instructions"""
    return (
        f"{instructions}\n\nRespond with a single JSON object matching this schema:\n"
        f"{json.dumps(schema.model_json_schema(), ensure_ascii=False)}"
    )


class LLMSession:
    """One stateless exchange with the provider. Discarded after its attempt."""

    def __init__(self, client: "LLMClient", instructions: str):
        self.client = client
        self.instructions = instructions

    async def respond(self, prompt: str, schema: Type[T], max_tokens: int) -> T:
        system = schema_instructions(self.instructions, schema)
        try:
            response = await self.client.complete(prompt, system=system, max_tokens=max_tokens)
        except ModelOutputError:
            raise
        except Exception as e:
            raise ModelOutputError(f"LLM call failed: {str(e)}") from e
        return parse_response(response.text, schema)


class LLMClient:
    """
    Unified LLM client supporting Anthropic and OpenAI

    Usage:
        client = LLMClient(openai_api_key="...")
        session = client.new_session(instructions)
        answer = await session.respond(prompt, ProteinResponse, max_tokens=64)
    """

    def __init__(
        self,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ):
        self.anthropic_api_key = anthropic_api_key
        self.openai_api_key = openai_api_key
        self.model = model or settings.llm_model
        self.temperature = settings.llm_temperature if temperature is None else temperature

        # Initialize API clients lazily
        self._anthropic_client = None
        self._openai_client = None

        logger.info(f"LLM Client initialized (model: {self.model})")

    @classmethod
    def from_settings(cls) -> "LLMClient":
        return cls(
            anthropic_api_key=settings.anthropic_api_key,
            openai_api_key=settings.openai_api_key,
        )

    def new_session(self, instructions: str) -> LLMSession:
        return LLMSession(self, instructions)

    def _get_anthropic_client(self):
        """Lazy load Anthropic client"""
        if self._anthropic_client is None:
            import anthropic

            self._anthropic_client = anthropic.AsyncAnthropic(api_key=self.anthropic_api_key)
            logger.info("Anthropic client initialized")

        return self._anthropic_client

    def _get_openai_client(self):
        """Lazy load OpenAI client"""
        if self._openai_client is None:
            import openai

            self._openai_client = openai.AsyncOpenAI(api_key=self.openai_api_key)
            logger.info("OpenAI client initialized")

        return self._openai_client

    def _calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost in USD"""
        if self.model not in MODEL_PRICING:
            return 0.0
        input_price, output_price = MODEL_PRICING[self.model]
        return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price

    def _get_provider(self) -> LLMProvider:
        """Determine provider from model name"""
        if "claude" in self.model.lower():
            return LLMProvider.ANTHROPIC
        elif "gpt" in self.model.lower() or self.model.lower().startswith("o"):
            return LLMProvider.OPENAI
        else:
            raise ValueError(f"Cannot determine provider for model: {self.model}")

    async def complete(self, prompt: str, system: str, max_tokens: int) -> LLMResponse:
        """Single provider call. Retries are the caller's business."""
        start_time = time.time()

        if self._get_provider() == LLMProvider.ANTHROPIC:
            response = await self._call_anthropic(prompt, system, max_tokens)
        else:
            response = await self._call_openai(prompt, system, max_tokens)

        response.latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"LLM call successful: {self.model} ({response.latency_ms}ms, "
            f"{response.input_tokens}/{response.output_tokens} tokens, "
            f"${response.cost_usd:.5f})"
        )
        return response

    async def _call_anthropic(self, prompt: str, system: str, max_tokens: int) -> LLMResponse:
        """Call Anthropic API"""
        client = self._get_anthropic_client()

        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )

        text = response.content[0].text if response.content else ""
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens

        return LLMResponse(
            text=text,
            model=self.model,
            provider=LLMProvider.ANTHROPIC.value,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self._calculate_cost(input_tokens, output_tokens),
        )

    async def _call_openai(self, prompt: str, system: str, max_tokens: int) -> LLMResponse:
        """Call OpenAI API in JSON mode"""
        client = self._get_openai_client()

        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            max_tokens=max_tokens,
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )

        text = response.choices[0].message.content
        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0

        return LLMResponse(
            text=text or "",
            model=self.model,
            provider=LLMProvider.OPENAI.value,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self._calculate_cost(input_tokens, output_tokens),
        )
