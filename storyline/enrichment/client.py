"""AI enrichment client: every text-completion call goes through here.

Two OpenAI clients are kept: the standard one (longer timeout, more retries)
and a quick one for callers that prefer a fast answer over a patient one.
Each call truncates oversized prompt turns, runs under a named circuit of the
shared CircuitBreaker, and in structured mode parses (and optionally
schema-validates) the JSON reply.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

import openai
from jsonschema import Draft202012Validator

from storyline.resilience.circuit_breaker import CircuitBreaker


logger = logging.getLogger(__name__)

DEFAULT_CHAT_MAX_CHARS = 3500
DEFAULT_EMBEDDING_MAX_CHARS = 2000


class InvalidStructuredResponse(ValueError):
    """The service answered, but not with the JSON object we asked for."""


@dataclass(frozen=True)
class PromptTurn:
    role: str
    content: str

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class EnrichmentRequest:
    messages: List[PromptTurn]
    structured: bool = False
    temperature: float = 0.3
    max_tokens: Optional[int] = None
    model: Optional[str] = None
    response_schema: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class RequestOptions:
    use_quick_client: bool = False
    circuit_name: str = "openai:chat"
    fallback: Optional[Callable[[], Any]] = None
    max_content_length: int = DEFAULT_CHAT_MAX_CHARS
    skip_circuit_breaker: bool = False


def truncate_turns(turns: List[PromptTurn], max_chars: int) -> List[PromptTurn]:
    return [
        replace(t, content=t.content[:max_chars]) if len(t.content) > max_chars else t
        for t in turns
    ]


def parse_structured(content: str, schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse AI JSON response: {str(content)[:100]!r}")
        raise InvalidStructuredResponse("Invalid JSON response from AI") from e
    if not isinstance(data, dict):
        raise InvalidStructuredResponse("AI JSON response is not an object")
    if schema is not None:
        errors = sorted(Draft202012Validator(schema).iter_errors(data), key=lambda e: list(e.path))
        if errors:
            first = errors[0]
            path = "/".join(str(p) for p in first.path) or "<root>"
            raise InvalidStructuredResponse(f"AI JSON response failed validation at {path}: {first.message}")
    return data


class AIEnrichmentClient:
    def __init__(
        self,
        breaker: CircuitBreaker,
        *,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        max_retries: int = 2,
        quick_timeout: float = 15.0,
        quick_max_retries: int = 1,
        client: Any = None,
        quick_client: Any = None,
    ):
        self.breaker = breaker
        self.model = model
        self.embedding_model = embedding_model
        self._client = client or openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self._quick_client = quick_client or openai.OpenAI(
            api_key=api_key, timeout=quick_timeout, max_retries=quick_max_retries
        )

    @classmethod
    def from_settings(cls, settings, breaker: CircuitBreaker) -> "AIEnrichmentClient":
        return cls(
            breaker,
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            embedding_model=settings.embedding_model,
            timeout=settings.ai_timeout,
            max_retries=settings.ai_max_retries,
            quick_timeout=settings.ai_quick_timeout,
            quick_max_retries=settings.ai_quick_max_retries,
        )

    def _pick(self, use_quick: bool):
        return self._quick_client if use_quick else self._client

    def chat_completion(self, request: EnrichmentRequest, options: Optional[RequestOptions] = None) -> Any:
        """Run one chat completion; returns text, or a dict in structured mode.

        The fallback (when given) covers both an open circuit and a failed call,
        including InvalidStructuredResponse.
        """
        options = options or RequestOptions()
        client = self._pick(options.use_quick_client)
        messages = [t.as_message() for t in truncate_turns(request.messages, options.max_content_length)]
        model = request.model or self.model

        def execute_request() -> Any:
            started = time.monotonic()
            kwargs: Dict[str, Any] = {
                "model": model,
                "messages": messages,
                "temperature": request.temperature,
            }
            if request.max_tokens is not None:
                kwargs["max_tokens"] = request.max_tokens
            if request.structured:
                kwargs["response_format"] = {"type": "json_object"}

            response = client.chat.completions.create(**kwargs)
            content = (response.choices[0].message.content if response.choices else None) or "{}"
            usage = getattr(response, "usage", None)
            logger.debug(
                f"AI request completed circuit={options.circuit_name} model={model} "
                f"duration_ms={int((time.monotonic() - started) * 1000)} "
                f"tokens={getattr(usage, 'total_tokens', None)}"
            )
            if request.structured:
                return parse_structured(content, request.response_schema)
            return content

        return self._run(options, execute_request)

    def embedding(self, text: str, options: Optional[RequestOptions] = None) -> List[float]:
        options = options or RequestOptions(
            use_quick_client=True,
            circuit_name="openai:embedding",
            max_content_length=DEFAULT_EMBEDDING_MAX_CHARS,
        )
        client = self._pick(options.use_quick_client)
        truncated = (text or "")[: options.max_content_length]

        def execute_request() -> List[float]:
            response = client.embeddings.create(model=self.embedding_model, input=truncated)
            return list(response.data[0].embedding)

        return self._run(options, execute_request)

    def _run(self, options: RequestOptions, execute_request: Callable[[], Any]) -> Any:
        if options.skip_circuit_breaker:
            try:
                return execute_request()
            except Exception as e:
                if options.fallback is not None:
                    logger.warning(f"AI request failed on {options.circuit_name} ({e}), using fallback")
                    return options.fallback()
                raise
        return self.breaker.execute(options.circuit_name, execute_request, options.fallback)

    def circuit_metrics(self) -> Dict[str, Dict[str, Any]]:
        return self.breaker.get_all_metrics()

    def reset_circuit(self, circuit_name: str) -> None:
        self.breaker.reset(circuit_name)
