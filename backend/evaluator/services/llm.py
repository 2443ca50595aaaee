import json
import logging
from collections.abc import AsyncIterator
from typing import Protocol

import httpx
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from evaluator.config import Settings, settings as default_settings
from evaluator.models.analysis import Provider
from evaluator.services.prompts import build_user_prompt, system_prompt
from evaluator.services.sanitize import clean_markdown, repair_spacing, strip_markup

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """single-shot failure, message is labeled with the provider (e.g. 'ZHI 3 failed: ...')"""


class ProviderFailure(str):
    """synthetic stream fragment that carries an upstream failure message.
    streams end right after yielding one, so callers can tell failure from text."""


class ProviderAdapter(Protocol):
    provider: Provider

    @property
    def configured(self) -> bool: ...

    async def complete(self, system: str, user: str) -> str: ...

    def stream(self, system: str, user: str) -> AsyncIterator[str]: ...

    async def analyze(
        self,
        text: str,
        mode: str,
        context: str | None = None,
        previous_analysis: str | None = None,
        critique: str | None = None,
    ) -> str: ...

    def stream_analysis(
        self,
        text: str,
        mode: str,
        context: str | None = None,
        previous_analysis: str | None = None,
        critique: str | None = None,
    ) -> AsyncIterator[str]: ...

    async def aclose(self) -> None: ...


class _Adapter:
    provider: Provider

    def __init__(self, api_key: str, settings: Settings):
        self.api_key = api_key
        self.settings = settings

    @property
    def label(self) -> str:
        return self.provider.label

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _fail(self, exc: BaseException | str) -> str:
        return f"{self.label} failed: {exc}"

    # --- upstream specifics, overridden per provider ---

    async def _complete(self, system: str, user: str) -> str:
        raise NotImplementedError

    def _stream(self, system: str, user: str) -> AsyncIterator[str]:
        raise NotImplementedError

    def _clean(self, text: str) -> str:
        return strip_markup(text)

    async def _normalize(self, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
        async for fragment in fragments:
            yield strip_markup(fragment)

    # --- uniform contract ---

    async def complete(self, system: str, user: str) -> str:
        if not self.configured:
            raise ProviderError(self._fail("api key is not set"))
        try:
            raw = await self._complete(system, user)
        except Exception as exc:
            logger.exception("%s request failed", self.provider.value)
            raise ProviderError(self._fail(exc)) from exc
        return self._clean(raw)

    async def stream(self, system: str, user: str) -> AsyncIterator[str]:
        if not self.configured:
            yield ProviderFailure(self._fail("api key is not set"))
            return
        try:
            async for fragment in self._normalize(self._stream(system, user)):
                if fragment:
                    yield fragment
        except Exception as exc:
            logger.warning("%s stream failed: %s", self.provider.value, exc)
            yield ProviderFailure(self._fail(exc))

    async def analyze(
        self,
        text: str,
        mode: str,
        context: str | None = None,
        previous_analysis: str | None = None,
        critique: str | None = None,
    ) -> str:
        user = build_user_prompt(text, context, previous_analysis, critique)
        return await self.complete(system_prompt(mode), user)

    def stream_analysis(
        self,
        text: str,
        mode: str,
        context: str | None = None,
        previous_analysis: str | None = None,
        critique: str | None = None,
    ) -> AsyncIterator[str]:
        user = build_user_prompt(text, context, previous_analysis, critique)
        return self.stream(system_prompt(mode), user)

    async def aclose(self) -> None:
        pass


class OpenAIAdapter(_Adapter):
    provider = Provider.ZHI1

    def __init__(self, settings: Settings = default_settings, client: AsyncOpenAI | None = None):
        super().__init__(settings.openai_api_key, settings)
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key, timeout=self.settings.request_timeout_seconds,
            )
        return self._client

    def _messages(self, system: str, user: str) -> list[dict]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def _complete(self, system: str, user: str) -> str:
        resp = await self._get_client().chat.completions.create(
            model=self.settings.openai_model,
            messages=self._messages(system, user),
            max_completion_tokens=self.settings.openai_max_tokens,
        )
        return resp.choices[0].message.content or ""

    async def _stream(self, system: str, user: str) -> AsyncIterator[str]:
        stream = await self._get_client().chat.completions.create(
            model=self.settings.openai_model,
            messages=self._messages(system, user),
            max_completion_tokens=self.settings.openai_max_tokens,
            stream=True,
        )
        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


class AnthropicAdapter(_Adapter):
    provider = Provider.ZHI2

    def __init__(self, settings: Settings = default_settings, client: AsyncAnthropic | None = None):
        super().__init__(settings.anthropic_api_key, settings)
        self._client = client

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.api_key, timeout=self.settings.request_timeout_seconds,
            )
        return self._client

    async def _complete(self, system: str, user: str) -> str:
        resp = await self._get_client().messages.create(
            model=self.settings.anthropic_model,
            max_tokens=self.settings.anthropic_max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return "".join(block.text for block in resp.content if block.type == "text")

    async def _stream(self, system: str, user: str) -> AsyncIterator[str]:
        async with self._get_client().messages.stream(
            model=self.settings.anthropic_model,
            max_tokens=self.settings.anthropic_max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        ) as stream:
            async for text in stream.text_stream:
                yield text

    def _clean(self, text: str) -> str:
        return clean_markdown(text).strip()

    async def _normalize(self, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
        # markdown patterns need whole lines or sentences to match
        buffer = ""
        async for fragment in fragments:
            buffer += fragment
            if "\n" in buffer or "." in buffer:
                yield clean_markdown(buffer).replace("**", "")
                buffer = ""
        if buffer:
            yield clean_markdown(buffer).replace("**", "")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


class _ChatCompletionsAdapter(_Adapter):
    """OpenAI-compatible chat completions over plain HTTP with SSE token deltas"""

    base_url: str
    model: str
    max_tokens: int
    temperature: float
    upstream: str

    def __init__(self, api_key: str, settings: Settings, client: httpx.AsyncClient | None = None):
        super().__init__(api_key, settings)
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout_seconds)
        return self._client

    def _messages(self, system: str, user: str) -> list[dict]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def _request(self, system: str, user: str, stream: bool) -> dict:
        return {
            "model": self.model,
            "messages": self._messages(system, user),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": stream,
        }

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _status_error(self, resp: httpx.Response) -> ProviderError:
        return ProviderError(
            f"{self.upstream} API returned {resp.status_code}: {resp.reason_phrase}"
        )

    async def _complete(self, system: str, user: str) -> str:
        resp = await self._get_client().post(
            f"{self.base_url}/chat/completions",
            headers=self._headers(),
            json=self._request(system, user, stream=False),
        )
        if resp.is_error:
            raise self._status_error(resp)
        data = resp.json()
        choices = data.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""

    async def _stream(self, system: str, user: str) -> AsyncIterator[str]:
        async with self._get_client().stream(
            "POST",
            f"{self.base_url}/chat/completions",
            headers=self._headers(),
            json=self._request(system, user, stream=True),
        ) as resp:
            if resp.is_error:
                await resp.aread()
                logger.warning("%s error body: %s", self.upstream, resp.text[:500])
                raise self._status_error(resp)
            async for content in decode_delta_frames(resp.aiter_lines()):
                yield content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


async def decode_delta_frames(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """token deltas from `data: {json}` lines; stops at [DONE], skips malformed frames"""
    async for line in lines:
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if data == "[DONE]":
            return
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            continue
        choices = parsed.get("choices") or [{}]
        content = (choices[0].get("delta") or {}).get("content")
        if content:
            yield content


class DeepSeekAdapter(_ChatCompletionsAdapter):
    provider = Provider.ZHI3
    upstream = "DeepSeek"
    temperature = 0.7

    def __init__(self, settings: Settings = default_settings, client: httpx.AsyncClient | None = None):
        super().__init__(settings.deepseek_api_key, settings, client)
        self.base_url = settings.deepseek_base_url.rstrip("/")
        self.model = settings.deepseek_model
        self.max_tokens = settings.deepseek_max_tokens

    def _clean(self, text: str) -> str:
        return clean_markdown(text).strip()


class PerplexityAdapter(_ChatCompletionsAdapter):
    """raw output from this upstream often drops inter-word spaces"""

    provider = Provider.ZHI4
    upstream = "Perplexity"
    temperature = 0.1

    def __init__(self, settings: Settings = default_settings, client: httpx.AsyncClient | None = None):
        super().__init__(settings.perplexity_api_key, settings, client)
        self.base_url = settings.perplexity_base_url.rstrip("/")
        self.model = settings.perplexity_model
        self.max_tokens = settings.perplexity_max_tokens

    def _messages(self, system: str, user: str) -> list[dict]:
        return [{"role": "user", "content": f"{system}\n\nAnalyze this text:\n{user}"}]

    def _clean(self, text: str) -> str:
        return repair_spacing(clean_markdown(text).replace("---", "")).strip()

    async def _normalize(self, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
        # dropped spaces sit at fragment boundaries; repair_spacing never alters the first char
        tail = ""
        async for fragment in fragments:
            cleaned = strip_markup(fragment).replace("---", "")
            if not cleaned:
                continue
            repaired = repair_spacing(tail + cleaned)
            yield repaired[len(tail):]
            tail = repaired[-1]


class ProviderRegistry:
    """provider key -> adapter, built once per process"""

    def __init__(self, adapters: dict[Provider, ProviderAdapter]):
        self._adapters = dict(adapters)

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "ProviderRegistry":
        adapters: list[ProviderAdapter] = [
            OpenAIAdapter(settings),
            AnthropicAdapter(settings),
            DeepSeekAdapter(settings),
            PerplexityAdapter(settings),
        ]
        return cls({a.provider: a for a in adapters})

    def get(self, provider: Provider | str) -> ProviderAdapter:
        try:
            return self._adapters[Provider(provider)]
        except (KeyError, ValueError):
            raise KeyError(f"unknown provider: {provider}") from None

    def configured(self) -> dict[str, bool]:
        return {p.value: a.configured for p, a in self._adapters.items()}

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()


_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    global _registry
    if _registry is None:
        _registry = ProviderRegistry.from_settings()
    return _registry


async def close_registry() -> None:
    global _registry
    if _registry is not None:
        await _registry.aclose()
        _registry = None
