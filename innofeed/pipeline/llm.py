"""Structured generation service: prompt in, validated JSON out.

Backends speak the OpenAI-compatible ``/chat/completions`` protocol. Each
backend retries transient and malformed responses with exponential backoff;
when it is exhausted the next backend is tried. Callers always get a
``GenerationResult`` back, never an exception.
"""
import asyncio
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from innofeed.config_loader import LLMConfig, RetryConfig
from innofeed.errors import (
    BackendAPIError,
    BackendUnavailableError,
    ConfigurationError,
    InvalidOutputError,
    LLMError,
    RateLimitError,
)
from innofeed.logging_setup import get_logger
from innofeed.settings import Settings
from innofeed.utils.retry import retry_async

logger = get_logger("pipeline.llm")

T = TypeVar("T", bound=BaseModel)

JSON_INSTRUCTION = "Please respond with valid JSON format."
INVALID_JSON_NOTE = (
    "\n\nSYSTEM_NOTE: Previous response was invalid JSON for the requested schema. "
    "RETURN ONLY RAW JSON. NO MARKDOWN."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class GenerationMode(str, Enum):
    FAST = "fast"
    DEFAULT = "default"
    CREATIVE = "creative"


@dataclass(frozen=True)
class ModeProfile:
    temperature: float
    max_tokens: int


MODE_PROFILES: Dict[GenerationMode, ModeProfile] = {
    GenerationMode.FAST: ModeProfile(temperature=0.1, max_tokens=2048),
    GenerationMode.DEFAULT: ModeProfile(temperature=0.1, max_tokens=8192),
    GenerationMode.CREATIVE: ModeProfile(temperature=0.3, max_tokens=8192),
}


@dataclass
class GenerationResult(Generic[T]):
    """Discriminated result: ``success`` with ``data``, or failure with ``error``."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    raw: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def ok(cls, data: T, raw: Optional[str] = None, provider: Optional[str] = None) -> "GenerationResult[T]":
        return cls(success=True, data=data, raw=raw, provider=provider)

    @classmethod
    def fail(cls, error: str, raw: Optional[str] = None) -> "GenerationResult[T]":
        return cls(success=False, error=error, raw=raw)


def extract_json_text(text: str) -> str:
    """Pull the JSON document out of a model answer (fenced block or outermost object)."""
    if not text:
        return ""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    text = text.strip()
    if text.startswith(("{", "[")):
        return text

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


def parse_structured(text: str, schema: Type[T]) -> T:
    """Parse and validate a model answer. Raises InvalidOutputError."""
    candidate = extract_json_text(text)
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidOutputError(f"invalid JSON: {e}") from e
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise InvalidOutputError(f"schema mismatch: {e.error_count()} error(s)") from e


class RequestThrottle:
    """Serializes call starts with a minimum spacing. Waiters are served FIFO."""

    def __init__(self, min_interval: float = 0.5):
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def wait(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self._last_start is not None:
                delay = self._last_start + self.min_interval - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_start = loop.time()


class ChatBackend:
    """One OpenAI-compatible chat completions provider."""

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str,
        api_key: Optional[str],
        timeout: float = 60.0,
        json_mode: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.json_mode = json_mode
        self.transport = transport

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def complete(self, messages: List[Dict[str, str]], profile: ModeProfile) -> str:
        """Return the raw assistant message text."""
        if not self.available:
            raise BackendUnavailableError(f"{self.name} API key is not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": profile.temperature,
            "max_tokens": profile.max_tokens,
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise BackendAPIError(f"{self.name} timeout: {e}") from e
        except httpx.HTTPError as e:
            raise BackendAPIError(f"{self.name} transport error: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(f"{self.name} rate limited")
        if response.status_code != 200:
            raise BackendAPIError(
                f"{self.name} HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise InvalidOutputError(f"{self.name} returned an unexpected body") from e

        if not content:
            raise InvalidOutputError(f"{self.name} returned an empty message")
        return content.strip()


def build_backends(
    settings: Settings,
    llm_config: LLMConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[ChatBackend]:
    """Backends in configured fallback order."""
    known = {
        "deepseek": ChatBackend(
            name="deepseek",
            base_url=settings.deepseek_base_url,
            model=settings.deepseek_model,
            api_key=settings.deepseek_api_key,
            timeout=llm_config.timeout,
            transport=transport,
        ),
        "gemini": ChatBackend(
            name="gemini",
            base_url=settings.gemini_base_url,
            model=settings.gemini_model,
            api_key=settings.gemini_api_key,
            timeout=llm_config.timeout,
            transport=transport,
        ),
    }
    backends = []
    for name in llm_config.backends:
        if name not in known:
            logger.warning("llm_unknown_backend", backend=name)
            continue
        backends.append(known[name])
    return backends


class StructuredGenerator:
    """Uniform ``generate(prompt, schema) -> GenerationResult`` over ordered backends."""

    def __init__(
        self,
        backends: List[ChatBackend],
        retry: Optional[RetryConfig] = None,
        throttle: Optional[RequestThrottle] = None,
    ):
        self.backends = backends
        self.retry = retry or RetryConfig()
        self.throttle = throttle or RequestThrottle()

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when no backend can be called."""
        if not any(b.available for b in self.backends):
            raise ConfigurationError(
                "No structured generation backend configured "
                "(set DEEPSEEK_API_KEY or GEMINI_API_KEY)"
            )

    async def generate(
        self,
        prompt: str,
        schema: Type[T],
        system_prompt: Optional[str] = None,
        mode: GenerationMode = GenerationMode.DEFAULT,
    ) -> GenerationResult[T]:
        profile = MODE_PROFILES[GenerationMode(mode)]
        errors: List[str] = []
        last_raw: Optional[str] = None

        for backend in self.backends:
            if not backend.available:
                errors.append(f"{backend.name}: not configured")
                continue

            state = {"raw": None, "invalid": False}

            async def attempt() -> T:
                user_prompt = prompt + INVALID_JSON_NOTE if state["invalid"] else prompt
                await self.throttle.wait()
                raw = await backend.complete(self._messages(user_prompt, system_prompt), profile)
                state["raw"] = raw
                return parse_structured(raw, schema)

            def on_error(exc: BaseException, attempt_number: int) -> None:
                state["invalid"] = isinstance(exc, InvalidOutputError)
                logger.warning(
                    "llm_attempt_failed",
                    backend=backend.name,
                    attempt=attempt_number,
                    error_code=getattr(exc, "code", type(exc).__name__),
                    error=str(exc),
                )

            try:
                data = await self._retry(attempt, on_error)
                return GenerationResult.ok(data, raw=state["raw"], provider=backend.name)
            except LLMError as e:
                last_raw = state["raw"] or last_raw
                errors.append(f"{backend.name}: {e}")
                logger.info("llm_fallback_switch", from_backend=backend.name, reason=e.code)

        error = "; ".join(errors) if errors else "no generation backends"
        logger.error("llm_generation_failed", schema=schema.__name__, error=error)
        return GenerationResult.fail(error, raw=last_raw)

    async def _retry(self, attempt, on_error):
        return await retry_async(
            attempt,
            attempts=self.retry.attempts,
            base_delay=self.retry.base_delay,
            max_delay=self.retry.max_delay,
            on_error=on_error,
            retry_on=(LLMError,),
        )

    @staticmethod
    def _messages(prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
        system = f"{system_prompt}\n\n{JSON_INSTRUCTION}" if system_prompt else JSON_INSTRUCTION
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]
