import json

import httpx
import pytest

from charactergen.adapters.anthropic_adapter import ANTHROPIC_VERSION, AnthropicAdapter
from charactergen.adapters.base import extract_json
from charactergen.adapters.openai_adapter import OpenAIAdapter
from charactergen.config import ProviderConfig
from charactergen.exceptions import ConfigurationError, ProviderError, ResponseFormatError, SchemaError
from charactergen.rate_limiter import RateLimiter

BACKGROUND_SCHEMA = {
    "type": "object",
    "required": ["background", "personality_traits"],
    "properties": {
        "background": {"type": "string"},
        "personality_traits": {"type": "array", "items": {"type": "string"}, "minItems": 2, "maxItems": 4},
    },
}

GOOD_PAYLOAD = {"background": "Raised in Silverkeep.", "personality_traits": ["Witty", "Brave"]}
MESSAGES = [{"role": "user", "content": "Write a background"}]


class CountingLimiter(RateLimiter):
    def __init__(self):
        super().__init__(100, 60.0)
        self.acquired = 0

    def acquire(self):
        self.acquired += 1
        super().acquire()


def anthropic_tool_reply(payload):
    return httpx.Response(200, json={
        "id": "msg_1",
        "type": "message",
        "content": [{"type": "tool_use", "id": "tool_1", "name": "generate_background", "input": payload}],
    })


def anthropic_text_reply(text):
    return httpx.Response(200, json={"content": [{"type": "text", "text": text}]})


def openai_reply(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}]})


@pytest.fixture
def make_anthropic(live_config, sleeps):
    def build(recorder, **options):
        return AnthropicAdapter(live_config, http_client=recorder.client(), sleep=sleeps.append, **options)
    return build


@pytest.fixture
def make_openai(live_config, sleeps):
    def build(recorder, **options):
        return OpenAIAdapter(live_config, http_client=recorder.client(), sleep=sleeps.append, **options)
    return build


# ─── Construction ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("adapter_cls", [AnthropicAdapter, OpenAIAdapter])
def test_live_adapters_require_key_and_model(adapter_cls):
    with pytest.raises(ConfigurationError):
        adapter_cls(ProviderConfig(model="m"))
    with pytest.raises(ConfigurationError):
        adapter_cls(ProviderConfig(api_key="k"))


def test_api_key_is_not_in_config_repr(live_config):
    assert "test-key" not in repr(live_config)


# ─── Anthropic wire format ────────────────────────────────────────────────────

def test_anthropic_forces_tool_use(recorder, make_anthropic):
    rec = recorder(anthropic_tool_reply(GOOD_PAYLOAD))
    client = make_anthropic(rec)

    result = client.chat_with_schema(
        [{"role": "system", "content": "Stay in character."}] + MESSAGES,
        BACKGROUND_SCHEMA,
        system_prompt="You write backgrounds.",
        provider_options={"tool_name": "generate_background", "tool_description": "Write one"},
    )

    assert result == GOOD_PAYLOAD
    request = rec.requests[0]
    assert request.headers["x-api-key"] == "test-key"
    assert request.headers["anthropic-version"] == ANTHROPIC_VERSION
    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert body["max_tokens"] == 512
    assert body["system"] == "You write backgrounds.\n\nStay in character."
    assert body["messages"] == MESSAGES
    assert body["tools"][0]["name"] == "generate_background"
    assert body["tools"][0]["input_schema"]["properties"]["personality_traits"]["minItems"] == 2
    assert body["tool_choice"] == {"type": "tool", "name": "generate_background"}


def test_anthropic_without_schema_parses_text(recorder, make_anthropic):
    rec = recorder(anthropic_text_reply('Here you go:\n{"status": "ok"}\nEnjoy!'))
    assert make_anthropic(rec).chat(MESSAGES) == {"status": "ok"}
    assert "tools" not in json.loads(rec.requests[0].content)


# ─── OpenAI wire format ───────────────────────────────────────────────────────

def test_openai_uses_json_mode_with_schema_instructions(recorder, make_openai):
    rec = recorder(openai_reply(json.dumps(GOOD_PAYLOAD)))
    result = make_openai(rec).chat(MESSAGES, system_prompt="You write backgrounds.", schema=BACKGROUND_SCHEMA)

    assert result == GOOD_PAYLOAD
    request = rec.requests[0]
    assert request.headers["authorization"] == "Bearer test-key"
    body = json.loads(request.content)
    assert body["response_format"] == {"type": "json_object"}
    system, user = body["messages"]
    assert system["role"] == "system"
    assert system["content"].startswith("You write backgrounds.")
    assert '"personality_traits"' in system["content"]
    assert user == MESSAGES[0]


def test_openai_fenced_content_is_unwrapped(recorder, make_openai):
    rec = recorder(openai_reply('```json\n{"status": "ok"}\n```'))
    assert make_openai(rec).chat(MESSAGES) == {"status": "ok"}


# ─── Retry and classification ─────────────────────────────────────────────────

def test_rate_limited_twice_then_success(recorder, make_anthropic, sleeps):
    limiter = CountingLimiter()
    rec = recorder(
        httpx.Response(429, headers={"retry-after": "2"}),
        httpx.Response(429),
        anthropic_tool_reply(GOOD_PAYLOAD),
    )
    result = make_anthropic(rec, rate_limiter=limiter).chat(MESSAGES, schema=BACKGROUND_SCHEMA)

    assert result == GOOD_PAYLOAD
    assert rec.calls == 3
    assert limiter.acquired == 3
    assert sleeps[0] == 2.0
    assert 2.0 <= sleeps[1] <= 3.0


def test_huge_retry_after_is_capped(recorder, make_anthropic, sleeps, live_config):
    rec = recorder(httpx.Response(429, headers={"retry-after": "86400"}), anthropic_tool_reply(GOOD_PAYLOAD))
    assert make_anthropic(rec).chat(MESSAGES, schema=BACKGROUND_SCHEMA) == GOOD_PAYLOAD
    assert sleeps == [live_config.retry_max_delay]


def test_exhausted_retries_make_no_fifth_call(recorder, make_anthropic, sleeps):
    rec = recorder(httpx.Response(503, json={"error": {"message": "overloaded"}}))
    with pytest.raises(ProviderError) as exc:
        make_anthropic(rec).chat(MESSAGES)

    assert rec.calls == 4
    assert len(sleeps) == 3
    assert exc.value.detail == "HTTP 503: overloaded (failed after 4 attempts)"
    assert exc.value.attempts == 4
    assert exc.value.__cause__ is not None


def test_connection_errors_are_retried(recorder, make_openai):
    rec = recorder(httpx.ConnectError("connection refused"), openai_reply('{"status": "ok"}'))
    assert make_openai(rec).chat(MESSAGES) == {"status": "ok"}
    assert rec.calls == 2


def test_timeouts_are_retried(recorder, make_openai):
    rec = recorder(httpx.ReadTimeout("timed out"))
    with pytest.raises(ProviderError) as exc:
        make_openai(rec).chat(MESSAGES)
    assert "request timed out" in exc.value.detail
    assert rec.calls == 4


@pytest.mark.parametrize("status", [401, 403])
def test_unauthorized_is_fatal(recorder, make_anthropic, status):
    rec = recorder(httpx.Response(status))
    with pytest.raises(ProviderError) as exc:
        make_anthropic(rec).chat(MESSAGES)
    assert exc.value.detail == "unauthorized"
    assert rec.calls == 1


def test_other_client_errors_are_fatal(recorder, make_openai):
    rec = recorder(httpx.Response(400, json={"error": {"message": "max_tokens too large"}}))
    with pytest.raises(ProviderError) as exc:
        make_openai(rec).chat(MESSAGES)
    assert exc.value.detail == "HTTP 400: max_tokens too large"
    assert rec.calls == 1


def test_invalid_json_is_retried_once(recorder, make_openai):
    rec = recorder(openai_reply("I cannot do that."))
    with pytest.raises(ProviderError) as exc:
        make_openai(rec).chat(MESSAGES)
    assert "invalid JSON response" in exc.value.detail
    assert rec.calls == 2


def test_schema_mismatch_is_resent_once(recorder, make_anthropic):
    rec = recorder(
        anthropic_tool_reply({"background": "x", "personality_traits": ["only one"]}),
        anthropic_tool_reply(GOOD_PAYLOAD),
    )
    assert make_anthropic(rec).chat(MESSAGES, schema=BACKGROUND_SCHEMA) == GOOD_PAYLOAD
    assert rec.calls == 2


def test_persistent_schema_mismatch_fails(recorder, make_anthropic):
    rec = recorder(anthropic_tool_reply({"background": 42}))
    with pytest.raises(ProviderError) as exc:
        make_anthropic(rec).chat(MESSAGES, schema=BACKGROUND_SCHEMA)
    assert "response failed schema validation" in exc.value.detail
    assert rec.calls == 2
    assert exc.value.__cause__.violations


# ─── Local rejections ─────────────────────────────────────────────────────────

@pytest.mark.parametrize("messages", [
    [],
    [{"role": "user"}],
    [{"role": "user", "content": "   "}],
    [{"content": "hi"}],
    ["hello"],
])
def test_bad_messages_are_rejected_without_network(recorder, make_anthropic, messages):
    rec = recorder(anthropic_tool_reply(GOOD_PAYLOAD))
    with pytest.raises(ProviderError) as exc:
        make_anthropic(rec).chat(messages)
    assert exc.value.detail.startswith("invalid message format")
    assert rec.calls == 0


@pytest.mark.parametrize("earlier", [
    {"content": "x"},
    {"role": "assistant"},
    {"role": "system", "content": None},
    "plain string turn",
])
@pytest.mark.parametrize("provider", ["anthropic", "openai"])
def test_malformed_earlier_turns_are_rejected(recorder, make_anthropic, make_openai, provider, earlier):
    rec = recorder(anthropic_tool_reply(GOOD_PAYLOAD))
    client = make_anthropic(rec) if provider == "anthropic" else make_openai(rec)
    with pytest.raises(ProviderError) as exc:
        client.chat([earlier, {"role": "user", "content": "hi"}])
    assert exc.value.detail.startswith("invalid message format: message 0")
    assert rec.calls == 0


def test_malformed_schema_is_rejected_without_network(recorder, make_anthropic):
    rec = recorder(anthropic_tool_reply(GOOD_PAYLOAD))
    with pytest.raises(SchemaError):
        make_anthropic(rec).chat_with_schema(MESSAGES, {"type": "array"})
    assert rec.calls == 0


# ─── Connection test ──────────────────────────────────────────────────────────

def test_connection_test_reports_failure_without_raising(recorder, live_config):
    rec = recorder(httpx.Response(401))
    client = OpenAIAdapter(live_config, http_client=rec.client())
    assert client.test_connection() is False


def test_connection_test_succeeds(recorder, make_openai):
    rec = recorder(openai_reply('{"status": "ok"}'))
    assert make_openai(rec).test_connection() is True


# ─── JSON extraction ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("text", [
    '{"a": 1}',
    '  {"a": 1}\n',
    '```json\n{"a": 1}\n```',
    '```\n{"a": 1}\n```',
    'Sure! {"a": 1} Hope that helps.',
])
def test_extract_json_tolerates_one_wrapper(text):
    assert extract_json(text) == {"a": 1}


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2]", '{"a": ', "null"])
def test_extract_json_rejects_non_objects(text):
    with pytest.raises(ResponseFormatError) as exc:
        extract_json(text)
    assert exc.value.detail == "invalid JSON response"
