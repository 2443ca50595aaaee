"""consumer side of the analysis event stream.

reads `/api/analyze` (or `/api/chat`) incrementally and rebuilds the transcript
the way the browser does: only `data:` lines count, a partial trailing line
waits for the next read, and a malformed line is skipped without ending the read.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"


class AnalysisRequestError(RuntimeError):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class SSELineBuffer:
    def __init__(self):
        self._pending = ""

    def feed(self, text: str) -> list[str]:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    @property
    def pending(self) -> str:
        return self._pending


def parse_data_line(line: str) -> dict | None:
    if not line.startswith(DATA_PREFIX):
        return None
    try:
        payload = json.loads(line[len(DATA_PREFIX):].strip())
    except json.JSONDecodeError:
        logger.debug("skipping malformed event line: %.80s", line)
        return None
    return payload if isinstance(payload, dict) else None


@dataclass
class Transcript:
    content: str = ""
    status: str = "idle"
    error: str | None = None
    id: str | None = None
    # one server variant sends the running total instead of the fragment
    cumulative: bool = False

    @property
    def done(self) -> bool:
        return self.status in ("completed", "error")

    def apply(self, event: dict) -> bool:
        """apply one decoded event; returns True once a terminal event was seen"""
        if self.done:
            return True
        status = event.get("status")
        content = event.get("content") or ""
        if event.get("id"):
            self.id = event["id"]

        if status == "starting":
            self.content = ""
            self.error = None
        elif status == "streaming":
            self.content = content if self.cumulative else self.content + content
        elif status == "completed":
            self.content = content
        elif status == "error":
            # keep what was already shown, the message is displayed alongside it
            self.error = content or "analysis failed"
        else:
            logger.debug("ignoring event with status %r", status)
            return False
        self.status = status
        return self.done


class AnalysisStreamClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    async def analyze(
        self,
        request: dict,
        on_update: Callable[[Transcript], None] | None = None,
        cumulative: bool = False,
    ) -> Transcript:
        return await self._consume("/api/analyze", request, on_update, cumulative)

    async def chat(
        self,
        message: str,
        context: dict | None = None,
        on_update: Callable[[Transcript], None] | None = None,
    ) -> Transcript:
        body: dict = {"message": message}
        if context:
            body["context"] = context
        return await self._consume("/api/chat", body, on_update, False)

    async def _consume(
        self,
        path: str,
        body: dict,
        on_update: Callable[[Transcript], None] | None,
        cumulative: bool,
    ) -> Transcript:
        transcript = Transcript(cumulative=cumulative)
        buffer = SSELineBuffer()
        async with self._client.stream("POST", path, json=body) as resp:
            if resp.is_error:
                await resp.aread()
                raise AnalysisRequestError(resp.status_code, _error_message(resp))
            async for text in resp.aiter_text():
                for line in buffer.feed(text):
                    event = parse_data_line(line)
                    if event is None:
                        continue
                    finished = transcript.apply(event)
                    if on_update is not None:
                        on_update(transcript)
                    if finished:
                        return transcript
        if not transcript.done:
            logger.warning("stream from %s ended without a terminal event", path)
        return transcript

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AnalysisStreamClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"request failed with status {resp.status_code}"
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or data)
    return str(data)
