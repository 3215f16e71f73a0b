# charactergen/adapters/base.py

"""
Defines `ProviderClient`, the contract every LLM provider adapter fulfils.

A provider client turns a list of chat messages (plus an optional system
prompt and response schema) into a validated JSON object:

    1. check the messages locally (never retried)
    2. wait for a rate-limit slot, before every attempt
    3. send the backend-specific request
    4. classify the outcome into the `charactergen.exceptions` taxonomy
    5. extract the JSON object and validate it against the schema
    6. retry transient failures with exponential backoff (`charactergen.retry`)

Concrete adapters only implement `_send()`. `HTTPProviderClient` adds the
shared `httpx` transport and status-code classification used by the live
Anthropic and OpenAI adapters.

🔁 Per-call state machine (logged at DEBUG):

    PENDING → RATE_LIMIT_WAIT → SENDING → SUCCESS
                      ↑             ├──→ TRANSIENT_FAILURE ─┘
                      │             └──→ FATAL_FAILURE
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from tenacity import RetryError

from charactergen.config import ProviderConfig
from charactergen.exceptions import (
    CharacterGenError,
    ConfigurationError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    ResponseFormatError,
)
from charactergen.rate_limiter import RateLimiter
from charactergen.retry import RetryPolicy, build_retrying
from charactergen.validation import Schema, collect_violations, validate_schema_shape

logger = logging.getLogger(__name__)

Message = Dict[str, Any]

_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class CallState(str, Enum):
    PENDING = "pending"
    RATE_LIMIT_WAIT = "rate_limit_wait"
    SENDING = "sending"
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    FATAL_FAILURE = "fatal_failure"


def extract_json(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output.

    Tolerates exactly one wrapping layer: a markdown code fence, or prose
    before and after a single `{...}` object.

    Raises:
        ResponseFormatError: If no JSON object can be recovered.
    """
    if not isinstance(text, str):
        raise ResponseFormatError("invalid JSON response")

    candidate = text.strip()
    fenced = _FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise ResponseFormatError("invalid JSON response")
        try:
            data = json.loads(candidate[start:end + 1])
        except json.JSONDecodeError as e:
            raise ResponseFormatError("invalid JSON response") from e

    if not isinstance(data, dict):
        raise ResponseFormatError("invalid JSON response")
    return data


def check_messages(messages: Any) -> None:
    """
    Reject message lists no provider could accept.

    Every entry must be a mapping with a string `role` and a string
    `content`; the last one must also have non-empty content.

    Raises:
        ProviderError: Naming the index of the first malformed entry.
    """
    if not isinstance(messages, (list, tuple)) or not messages:
        raise ProviderError("invalid message format: messages must be a non-empty list")

    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise ProviderError(f"invalid message format: message {index} must be a mapping")
        if not isinstance(message.get("role"), str):
            raise ProviderError(f"invalid message format: message {index} needs a string role")
        if not isinstance(message.get("content"), str):
            raise ProviderError(f"invalid message format: message {index} needs string content")

    if not messages[-1]["content"].strip():
        raise ProviderError(f"invalid message format: message {len(messages) - 1} needs non-empty content")


class ProviderClient(ABC):
    """
    Abstract base class for all provider adapters.

    Args:
        config (ProviderConfig): Immutable connection parameters.
        rate_limiter (RateLimiter): Optional shared limiter; one is built from
            the config when omitted.
        sleep (Callable): Backoff sleep, injectable for tests.
    """

    name = "base"
    requires_credentials = True

    # Retryable failures; contract violations get a single re-send.
    RETRYABLE = (RateLimitError, ProviderUnavailableError, ResponseFormatError)
    CONTRACT_ERRORS = (ResponseFormatError,)

    def __init__(
        self,
        config: ProviderConfig,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if self.requires_credentials:
            if not config.api_key:
                raise ConfigurationError(f"{self.name} API key is not configured")
            if not config.model:
                raise ConfigurationError(f"{self.name} model is not configured")

        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit_requests, config.rate_limit_window)
        self.retry_policy = RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        self._sleep = sleep

    # ─── Public contract ───────────────────────────────────────────────────────

    def chat(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None,
        schema: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """
        Send a chat request and return the parsed JSON object.

        When `schema` is given this is `chat_with_schema` without provider options.

        Raises:
            ProviderError: On any terminal failure.
            SchemaError: If `schema` is malformed.
        """
        if schema is not None:
            return self.chat_with_schema(messages, schema, system_prompt=system_prompt)
        return self._call(messages, system_prompt, None, {})

    def chat_with_schema(
        self,
        messages: List[Message],
        schema: Any,
        system_prompt: Optional[str] = None,
        provider_options: Optional[Mapping] = None,
    ) -> Dict[str, Any]:
        """
        Send a structured-output request; the result always satisfies `schema`.

        Args:
            messages (List[Dict]): Chat history, `{role, content}` mappings.
            schema (Schema | Mapping): Expected response shape.
            system_prompt (str): Optional system instructions.
            provider_options (Mapping): Formatting hints for this backend,
                e.g. `{"tool_name": ..., "tool_description": ...}`.

        Returns:
            Dict[str, Any]: The validated response object.
        """
        parsed = validate_schema_shape(schema)
        return self._call(messages, system_prompt, parsed, dict(provider_options or {}))

    def test_connection(self) -> bool:
        """Run a minimal request. Never raises; failures are logged."""
        try:
            self.chat([{"role": "user", "content": 'Reply with the JSON object {"status": "ok"}.'}])
        except CharacterGenError as e:
            logger.warning(f"[{self.__class__.__name__}] connection test failed: {e.detail}")
            return False
        return True

    def close(self) -> None:
        """Release transport resources, if any."""

    # ─── Adapter hook ──────────────────────────────────────────────────────────

    @abstractmethod
    def _send(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Perform one attempt and return the extracted JSON object.

        Must raise only `charactergen.exceptions` errors.
        """
        ...

    # ─── Retry loop ────────────────────────────────────────────────────────────

    def _call(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        check_messages(messages)
        self._transition(CallState.PENDING)

        retrying = build_retrying(
            self.retry_policy,
            self.RETRYABLE,
            self.CONTRACT_ERRORS,
            sleep=self._sleep,
            label=self.__class__.__name__,
        )

        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = self._attempt(messages, system_prompt, schema, options)
        except RetryError as e:
            last = e.last_attempt.exception()
            count = e.last_attempt.attempt_number
            self._transition(CallState.FATAL_FAILURE)
            logger.error(f"[{self.__class__.__name__}] giving up after {count} attempts: {last}")
            raise ProviderError(f"{last.detail} (failed after {count} attempts)", attempts=count) from last
        except ProviderError as e:
            e.attempts = attempts
            raise

        return result

    def _attempt(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        self._transition(CallState.RATE_LIMIT_WAIT)
        self.rate_limiter.acquire()
        self._transition(CallState.SENDING)

        try:
            payload = self._send(messages, system_prompt, schema, options)
            if schema is not None:
                violations = collect_violations(schema, payload)
                if violations:
                    raise ResponseFormatError("response failed schema validation", violations)
        except self.RETRYABLE as e:
            self._transition(CallState.TRANSIENT_FAILURE, error=e)
            raise
        except ProviderError as e:
            self._transition(CallState.FATAL_FAILURE, error=e)
            raise

        self._transition(CallState.SUCCESS)
        return payload

    def _transition(self, state: CallState, error: Optional[Exception] = None) -> None:
        suffix = f" ({error})" if error is not None else ""
        logger.debug(
            f"[{self.__class__.__name__}] -> {state.value}{suffix}",
            extra={"provider": self.name, "call_state": state.value},
        )


class HTTPProviderClient(ProviderClient):
    """
    A provider client that talks JSON over HTTP with `httpx`.

    Args:
        http_client (httpx.Client): Optional client, e.g. one built on
            `httpx.MockTransport` in tests. Owned clients are closed by `close()`.
    """

    default_endpoint = ""

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.Client] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(config, rate_limiter=rate_limiter, sleep=sleep)
        self.endpoint_url = config.endpoint_url or self.default_endpoint
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=httpx.Timeout(config.timeout))

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        ...

    def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST `body` to the endpoint and return the decoded JSON document.

        Raises:
            ProviderUnavailableError: Timeout, connection failure or 5xx.
            RateLimitError: HTTP 429.
            ProviderError: 401/403 or any other 4xx.
            ResponseFormatError: The body is not a JSON object.
        """
        logger.info(f"[{self.__class__.__name__}] POST model={self.config.model}, max_tokens={self.config.max_tokens}")
        try:
            response = self.http_client.post(
                self.endpoint_url,
                headers=self._headers(),
                json=body,
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"connection failed: {e}") from e

        self._classify(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ResponseFormatError("invalid JSON response") from e
        if not isinstance(data, dict):
            raise ResponseFormatError("invalid JSON response")
        return data

    @staticmethod
    def _classify(response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise ProviderError("unauthorized")
        if status == 429:
            raise RateLimitError("rate limited by provider", retry_after=parse_retry_after(response))
        message = error_message(response)
        if status >= 500:
            raise ProviderUnavailableError(f"HTTP {status}: {message}")
        raise ProviderError(f"HTTP {status}: {message}")


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """`Retry-After` in seconds, or None when absent or not numeric."""
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_message(response: httpx.Response) -> str:
    """Best-effort human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])

    return response.text[:200] or response.reason_phrase
