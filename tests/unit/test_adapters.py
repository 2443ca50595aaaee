import json
from types import SimpleNamespace

import httpx
import pytest

from evaluator.config import Settings
from evaluator.models.analysis import Provider
from evaluator.services.llm import (
    AnthropicAdapter,
    DeepSeekAdapter,
    OpenAIAdapter,
    PerplexityAdapter,
    ProviderError,
    ProviderFailure,
    ProviderRegistry,
)
from evaluator.services.prompts import system_prompt

KEYS = Settings(
    openai_api_key="sk-test",
    anthropic_api_key="ak-test",
    deepseek_api_key="ds-test",
    perplexity_api_key="px-test",
)


def _sse(*deltas: str, done: bool = True) -> bytes:
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": d}}]})
        for d in deltas
    ]
    if done:
        lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode()


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


# --- openai-compatible http upstreams ---


@pytest.mark.asyncio
async def test_deepseek_stream_decodes_deltas_and_strips_markup() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        body = _sse("**Insight", "ful**", done=False) + b"data: {not json\n\n: comment\n\n" + _sse(" `yes`")
        return httpx.Response(200, content=body)

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    fragments = await _collect(adapter.stream_analysis("some text", "cognitive-short"))

    assert fragments == ["Insight", "ful", " yes"]
    assert seen["url"] == "https://api.deepseek.com/v1/chat/completions"
    assert seen["auth"] == "Bearer ds-test"
    assert seen["body"]["stream"] is True
    assert seen["body"]["messages"][0] == {"role": "system", "content": system_prompt("cognitive-short")}


@pytest.mark.asyncio
async def test_stream_stops_at_done_sentinel() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_sse("one") + _sse("two", done=False))

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    assert await _collect(adapter.stream("sys", "user")) == ["one"]


@pytest.mark.asyncio
async def test_http_error_becomes_single_failure_fragment() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "bad key"})

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    fragments = await _collect(adapter.stream_analysis("text", "cognitive-short"))

    assert len(fragments) == 1
    assert isinstance(fragments[0], ProviderFailure)
    assert fragments[0] == "ZHI 3 failed: DeepSeek API returned 401: Unauthorized"


@pytest.mark.asyncio
async def test_transport_error_mid_stream_keeps_partial_then_fails() -> None:
    class Broken(httpx.AsyncByteStream):
        async def __aiter__(self):
            yield _sse("first part", done=False)
            raise httpx.ReadError("connection reset")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=Broken())

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    fragments = await _collect(adapter.stream("sys", "user"))

    assert fragments[0] == "first part"
    assert isinstance(fragments[-1], ProviderFailure)
    assert "connection reset" in fragments[-1]


@pytest.mark.asyncio
async def test_single_shot_error_is_labeled() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    adapter = PerplexityAdapter(KEYS, client=_http(handler))
    with pytest.raises(ProviderError, match="^ZHI 4 failed: Perplexity API returned 429"):
        await adapter.analyze("text", "cognitive-short")


@pytest.mark.asyncio
async def test_missing_key_fails_without_calling_upstream() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("upstream must not be called")

    adapter = DeepSeekAdapter(Settings(deepseek_api_key=""), client=_http(handler))
    fragments = await _collect(adapter.stream("sys", "user"))

    assert fragments == ["ZHI 3 failed: api key is not set"]
    with pytest.raises(ProviderError):
        await adapter.complete("sys", "user")


@pytest.mark.asyncio
async def test_perplexity_folds_system_prompt_and_repairs_spacing() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=_sse("The authorMakes", " a point.It scores85out of 100"))

    adapter = PerplexityAdapter(KEYS, client=_http(handler))
    fragments = await _collect(adapter.stream_analysis("essay", "psychological-short"))

    assert "".join(fragments) == "The author Makes a point. It scores 85 out of 100"
    messages = seen["body"]["messages"]
    assert len(messages) == 1 and messages[0]["role"] == "user"
    assert messages[0]["content"].startswith(system_prompt("psychological-short"))
    assert "Analyze this text:" in messages[0]["content"]


@pytest.mark.asyncio
async def test_perplexity_repairs_spacing_across_fragment_boundaries() -> None:
    pieces = ["The author", "Makes a point", ".", "It scores", "85", "out of 100"]

    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["stream"]:
            return httpx.Response(200, content=_sse(*pieces))
        return httpx.Response(200, json={"choices": [{"message": {"content": "".join(pieces)}}]})

    adapter = PerplexityAdapter(KEYS, client=_http(handler))
    fragments = await _collect(adapter.stream_analysis("essay", "cognitive-short"))
    full = await adapter.analyze("essay", "cognitive-short")

    assert fragments[:2] == ["The author", " Makes a point"]
    assert "".join(fragments) == "The author Makes a point. It scores 85 out of 100"
    assert "".join(fragments) == full


@pytest.mark.asyncio
async def test_single_shot_cleans_full_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "## Verdict\n**Sharp** work"}}]})

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    assert await adapter.analyze("text", "cognitive-long") == "Verdict\nSharp work"


@pytest.mark.asyncio
async def test_unknown_mode_uses_cognitive_short_prompt() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=_sse("ok"))

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    await _collect(adapter.stream_analysis("text", "astrological-long"))

    assert seen["body"]["messages"][0]["content"] == system_prompt("cognitive-short")


@pytest.mark.asyncio
async def test_revision_inputs_reach_the_prompt() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=_sse("ok"))

    adapter = DeepSeekAdapter(KEYS, client=_http(handler))
    await _collect(adapter.stream_analysis(
        "text", "cognitive-short", context="a preface",
        previous_analysis="score 40", critique="too harsh",
    ))

    user = seen["body"]["messages"][1]["content"]
    assert "a preface" in user
    assert "score 40" in user and "too harsh" in user


# --- sdk upstreams ---


def _openai_client(deltas: list[str | None]):
    async def chunks():
        for d in deltas:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=d))])
        yield SimpleNamespace(choices=[])

    calls: list[dict] = []

    async def create(**kwargs):
        calls.append(kwargs)
        if kwargs.get("stream"):
            return chunks()
        message = SimpleNamespace(content="".join(d or "" for d in deltas))
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, calls


@pytest.mark.asyncio
async def test_openai_stream_skips_empty_deltas_and_strips_markup() -> None:
    client, calls = _openai_client(["# Summary\n", None, "**Bold** claim"])
    adapter = OpenAIAdapter(KEYS, client=client)

    fragments = await _collect(adapter.stream_analysis("text", "cognitive-short"))

    assert fragments == ["Summary\n", "Bold claim"]
    assert calls[0]["stream"] is True
    assert calls[0]["model"] == KEYS.openai_model
    assert calls[0]["max_completion_tokens"] == KEYS.openai_max_tokens


@pytest.mark.asyncio
async def test_openai_exception_becomes_failure_fragment() -> None:
    async def create(**kwargs):
        raise RuntimeError("rate limited")

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    adapter = OpenAIAdapter(KEYS, client=client)

    fragments = await _collect(adapter.stream("sys", "user"))
    assert fragments == ["ZHI 1 failed: rate limited"]
    with pytest.raises(ProviderError, match="ZHI 1 failed: rate limited"):
        await adapter.complete("sys", "user")


class _AnthropicStream:
    def __init__(self, texts: list[str]):
        self._texts = texts

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def text_stream(self):
        async def gen():
            for t in self._texts:
                yield t
        return gen()


@pytest.mark.asyncio
async def test_anthropic_buffers_to_sentence_boundaries() -> None:
    calls: list[dict] = []

    def stream(**kwargs):
        calls.append(kwargs)
        return _AnthropicStream(["**Bo", "ld** claim", ". Next", " bit"])

    client = SimpleNamespace(messages=SimpleNamespace(stream=stream))
    adapter = AnthropicAdapter(KEYS, client=client)

    fragments = await _collect(adapter.stream_analysis("text", "psychological-long"))

    assert fragments == ["Bold claim. Next", " bit"]
    assert calls[0]["system"] == system_prompt("psychological-long")


@pytest.mark.asyncio
async def test_anthropic_single_shot_joins_text_blocks() -> None:
    async def create(**kwargs):
        return SimpleNamespace(content=[
            SimpleNamespace(type="text", text="**Score**: 80"),
            SimpleNamespace(type="tool_use"),
        ])

    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    adapter = AnthropicAdapter(KEYS, client=client)

    assert await adapter.analyze("text", "cognitive-short") == "Score: 80"


# --- registry ---


def test_registry_maps_every_provider() -> None:
    registry = ProviderRegistry.from_settings(KEYS)

    assert registry.get("zhi1").provider is Provider.ZHI1
    assert isinstance(registry.get(Provider.ZHI4), PerplexityAdapter)
    assert registry.configured() == {"zhi1": True, "zhi2": True, "zhi3": True, "zhi4": True}
    with pytest.raises(KeyError):
        registry.get("zhi9")
