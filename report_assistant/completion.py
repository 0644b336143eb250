"""
Chat-completion client for OpenAI-compatible providers.

Supports buffered and streamed (server-sent event) responses behind one
interface. Each provider is described by a CompletionProvider entry: its
base URL, a request transform and a delta extractor. Adding a provider
means calling register_provider() with a new entry.
"""

import asyncio
import inspect
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .auth import response_error_message
from .config import (
    AI_SETTINGS_KEY,
    COMPLETION_API_KEY,
    COMPLETION_TIMEOUT,
    DEFAULT_COMPLETION_MODEL,
    DEFAULT_COMPLETION_PROVIDER,
    DEFAULT_MAX_TOKENS,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TEMPERATURE,
)
from .errors import (
    CompletionCancelled,
    MalformedResponse,
    PreconditionFailed,
    UpstreamHttpError,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = 'data: '
DONE_LINE = 'data: [DONE]'

ChunkCallback = Callable[[str, str], Union[None, Awaitable[None]]]


# =============================================================================
# PROVIDERS
# =============================================================================

def _first_choice(data: dict) -> dict:
    choices = data.get('choices') or [{}]
    return choices[0] or {}


def openai_delta(chunk: dict) -> Optional[str]:
    return (_first_choice(chunk).get('delta') or {}).get('content')


def openai_message(body: dict) -> Optional[str]:
    return (_first_choice(body).get('message') or {}).get('content')


def _passthrough_request(payload: dict) -> dict:
    return {
        'model': payload['model'],
        'messages': payload['messages'],
        'stream': payload['stream'],
        'temperature': payload['temperature'],
        'max_tokens': payload['max_tokens'],
    }


def _without_max_tokens(payload: dict) -> dict:
    return {
        'model': payload['model'],
        'messages': payload['messages'],
        'stream': payload['stream'],
        'temperature': payload['temperature'],
    }


@dataclass(frozen=True)
class CompletionProvider:
    name: str
    base_url: str
    transform_request: Callable[[dict], dict]
    extract_delta: Callable[[dict], Optional[str]]
    extract_message: Callable[[dict], Optional[str]] = openai_message
    label: str = ''
    models: tuple[tuple[str, str], ...] = ()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    @property
    def default_model(self) -> str:
        return self.models[0][0] if self.models else ''


PROVIDERS: dict[str, CompletionProvider] = {}


def register_provider(provider: CompletionProvider) -> CompletionProvider:
    PROVIDERS[provider.name] = provider
    return provider


def get_provider(name: str) -> CompletionProvider:
    provider = PROVIDERS.get(name)
    if provider is None:
        raise PreconditionFailed(f"未知的AI提供商: {name}")
    return provider


register_provider(CompletionProvider(
    name='deepseek',
    label='DeepSeek',
    base_url='https://api.deepseek.com',
    models=(
        ('deepseek-chat', 'DeepSeek Chat (推荐)'),
        ('deepseek-reasoner', 'DeepSeek Reasoner'),
    ),
    transform_request=_passthrough_request,
    extract_delta=openai_delta,
))

register_provider(CompletionProvider(
    name='doubao',
    label='火山方舟 (豆包)',
    base_url='https://ark.cn-beijing.volces.com/api/v3',
    models=(
        ('kimi-k2-250711', 'Kimi-K2'),
        ('doubao-1-5-pro-32k-250115', 'Doubao Pro 32k'),
        ('doubao-1-5-lite-32k-250115', 'Doubao Lite 32k'),
    ),
    transform_request=_without_max_tokens,
    extract_delta=openai_delta,
))


# =============================================================================
# SETTINGS
# =============================================================================

class CompletionSettings(BaseModel):
    """AI settings; persisted as {provider, apiKey, model} under `ai_settings`."""
    model_config = ConfigDict(populate_by_name=True)

    provider: str = DEFAULT_COMPLETION_PROVIDER
    api_key: str = Field(default='', alias='apiKey')
    model: str = DEFAULT_COMPLETION_MODEL
    system_prompt: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    stream: bool = True

    @classmethod
    def load(cls, store) -> "CompletionSettings":
        settings = cls()
        raw = store.get(AI_SETTINGS_KEY)
        if raw:
            try:
                settings = cls.model_validate(json.loads(raw))
            except (ValueError, ValidationError) as e:
                logger.error(f"Failed to parse AI settings from storage: {e}")
        if not settings.api_key and COMPLETION_API_KEY:
            settings = settings.model_copy(update={'api_key': COMPLETION_API_KEY})
        return settings

    def save(self, store) -> None:
        store.set(AI_SETTINGS_KEY, json.dumps(
            {'provider': self.provider, 'apiKey': self.api_key, 'model': self.model},
            ensure_ascii=False,
        ))


# =============================================================================
# PER-CALL STATE
# =============================================================================

class CallState(str, Enum):
    IDLE = 'idle'
    REQUESTING = 'requesting'
    STREAMING = 'streaming'
    BUFFERED = 'buffered'
    SETTLED = 'settled'


@dataclass
class StreamAccumulator:
    text: str = ''
    is_done: bool = False
    state: CallState = CallState.IDLE
    fragments: int = field(default=0)

    def append(self, fragment: str) -> str:
        self.text += fragment
        self.fragments += 1
        return self.text


class CancellationToken:
    """Cooperative cancellation for a completion call."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def parse_event_line(line: str, extract_delta: Callable[[dict], Optional[str]]) -> Optional[str]:
    """
    Extract the text fragment from one `data: <json>` line.

    Returns None for non-data lines, the [DONE] sentinel, empty deltas and
    lines that fail to parse (logged, never raised).
    """
    line = line.rstrip('\r')
    if not line.startswith(DATA_PREFIX) or line == DONE_LINE:
        return None
    try:
        chunk = json.loads(line[len(DATA_PREFIX):])
        fragment = extract_delta(chunk)
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        logger.warning(f"解析 SSE 数据错误: {e} (line={line[:120]!r})")
        return None
    return fragment if isinstance(fragment, str) and fragment else None


# =============================================================================
# CLIENT
# =============================================================================

class StreamingCompletionClient:
    """
    Issues chat-completion requests for the configured provider.

    Use complete() for a final string (with an optional per-chunk callback)
    or stream() for an async iterator of fragments.
    """

    def __init__(
        self,
        settings: CompletionSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = COMPLETION_TIMEOUT,
    ):
        self.settings = settings
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout

    async def __aenter__(self) -> "StreamingCompletionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    @property
    def provider(self) -> CompletionProvider:
        return get_provider(self.settings.provider)

    def has_api_key(self) -> bool:
        return bool(self.settings.api_key)

    def require_api_key(self) -> None:
        if not self.has_api_key():
            raise PreconditionFailed("请先在设置中配置AI模型的API Key")

    def build_payload(
        self,
        prompt: str,
        text: str,
        *,
        stream: bool,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        """Canonical request body, before the provider's transform."""
        system = system_prompt or self.settings.system_prompt or DEFAULT_SYSTEM_PROMPT
        return {
            'model': self.settings.model or self.provider.default_model,
            'messages': [
                {'role': 'system', 'content': system},
                {'role': 'user', 'content': f"{prompt}\n\n{text}"},
            ],
            'stream': stream,
            'temperature': self.settings.temperature if temperature is None else temperature,
            'max_tokens': self.settings.max_tokens if max_tokens is None else max_tokens,
        }

    async def _send(self, payload: dict, stream: bool) -> httpx.Response:
        provider = self.provider
        request = self.http.build_request(
            'POST',
            provider.endpoint,
            json=provider.transform_request(payload),
            headers={
                'Content-Type': 'application/json',
                'Authorization': f"Bearer {self.settings.api_key}",
            },
            timeout=self._timeout,
        )
        logger.debug(f"POST {provider.endpoint} model={payload['model']} stream={stream}")
        response = await self.http.send(request, stream=stream)

        if response.is_error:
            try:
                await response.aread()
                message = response_error_message(response)
            finally:
                await response.aclose()
            logger.error(f"API 调用失败: {response.status_code} - {message}")
            raise UpstreamHttpError(response.status_code, message)

        return response

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancellationToken], accumulator: StreamAccumulator) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            accumulator.state = CallState.SETTLED
            raise CompletionCancelled(accumulator.text)

    async def _next_line(
        self,
        lines: AsyncIterator[str],
        cancel_token: Optional[CancellationToken],
        accumulator: StreamAccumulator,
    ) -> Optional[str]:
        """
        Next line of the body, or None at end of stream.

        With a cancellation token the read is raced against the token, so a
        cancel takes effect even while the upstream is stalled.
        """
        self._check_cancelled(cancel_token, accumulator)
        if cancel_token is None:
            try:
                return await lines.__anext__()
            except StopAsyncIteration:
                return None

        read = asyncio.ensure_future(lines.__anext__())
        cancelled = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (read, cancelled) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)

        if cancelled in done:
            self._check_cancelled(cancel_token, accumulator)
        try:
            return read.result()
        except StopAsyncIteration:
            return None

    async def stream(
        self,
        prompt: str,
        text: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        accumulator: Optional[StreamAccumulator] = None,
        **options: Any,
    ) -> AsyncIterator[str]:
        """
        Yield text fragments as the provider streams them.

        The response is closed whenever the generator exits: after the
        [DONE] sentinel, at end of body, on cancellation, on error, or when
        the consumer stops iterating (use contextlib.aclosing for the last case).
        """
        self.require_api_key()
        acc = accumulator if accumulator is not None else StreamAccumulator()
        extract_delta = self.provider.extract_delta
        payload = self.build_payload(prompt, text, stream=True, **options)

        self._check_cancelled(cancel_token, acc)
        acc.state = CallState.REQUESTING
        try:
            response = await self._send(payload, stream=True)
        except BaseException:
            acc.state = CallState.SETTLED
            raise

        acc.state = CallState.STREAMING
        lines = response.aiter_lines()
        try:
            while True:
                line = await self._next_line(lines, cancel_token, acc)
                if line is None or line.strip() == DONE_LINE:
                    break
                fragment = parse_event_line(line, extract_delta)
                if fragment:
                    acc.append(fragment)
                    yield fragment
            acc.is_done = True
        finally:
            acc.state = CallState.SETTLED
            await response.aclose()
            logger.debug(f"Stream closed after {acc.fragments} fragment(s), {len(acc.text)} chars")

    async def complete(
        self,
        prompt: str,
        text: str,
        on_chunk: Optional[ChunkCallback] = None,
        *,
        stream: Optional[bool] = None,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any,
    ) -> str:
        """
        Run one completion and return the full text.

        In streaming mode `on_chunk(fragment, accumulated)` is called for each
        fragment (it may be a coroutine function).
        """
        use_stream = self.settings.stream if stream is None else stream
        if not use_stream:
            return await self._complete_buffered(prompt, text, cancel_token, **options)

        acc = StreamAccumulator()
        async with aclosing(self.stream(prompt, text, cancel_token=cancel_token, accumulator=acc, **options)) as fragments:
            async for fragment in fragments:
                if on_chunk is not None:
                    result = on_chunk(fragment, acc.text)
                    if inspect.isawaitable(result):
                        await result
        return acc.text

    async def _complete_buffered(
        self,
        prompt: str,
        text: str,
        cancel_token: Optional[CancellationToken],
        **options: Any,
    ) -> str:
        self.require_api_key()
        acc = StreamAccumulator()
        payload = self.build_payload(prompt, text, stream=False, **options)

        self._check_cancelled(cancel_token, acc)
        acc.state = CallState.REQUESTING
        try:
            response = await self._send(payload, stream=False)
            acc.state = CallState.BUFFERED
            self._check_cancelled(cancel_token, acc)

            try:
                body = response.json()
            except ValueError as e:
                raise MalformedResponse(f"Completion response is not JSON: {e}") from e

            try:
                content = self.provider.extract_message(body)
            except (KeyError, IndexError, TypeError, AttributeError):
                content = None
            if not isinstance(content, str):
                logger.warning("Completion response carried no message content")
                content = ''

            acc.append(content)
            acc.is_done = True
            return acc.text
        finally:
            acc.state = CallState.SETTLED
