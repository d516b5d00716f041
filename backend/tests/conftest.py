"""
Shared pytest fixtures for the assistant tests.

Delays (typing, retry backoff, navigation debounce, UI coalescing) are set to
zero so orchestrator tests run instantly; the model endpoint is replaced with
an httpx.MockTransport.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from config import RuntimeConfig
from services.llm_client import LLMClient
from services.portal import (
    DEFAULT_ROUTES,
    InMemoryAuthService,
    InMemoryRouter,
    InMemoryThemeService,
    User,
)

HOTLINE = "1108/1109"

ALL_PERMISSIONS = [
    "QLThietBi.DanhSach",
    "QLThietBi.Dashboard",
    "BaoCao.Giuong",
    "BaoCao.KhamBenh",
    "BaoCao.HSBA",
    "BaoCao.CLS",
]


def make_config(**overrides) -> RuntimeConfig:
    """Isolated config with every delay disabled."""
    values = dict(
        llm_url="http://llm.test/api/llm",
        hotline=HOTLINE,
        typing_delay_per_char_ms=0,
        typing_delay_min_ms=0,
        typing_delay_max_ms=0,
        retry_delay_s=0,
        nav_debounce_s=0,
        nav_settle_s=0,
        ui_debounce_ms=0,
        request_timeout_s=2.0,
        health_timeout_s=1.0,
    )
    values.update(overrides)
    return RuntimeConfig(**values)


def ndjson(*frames: Dict[str, Any]) -> bytes:
    """Encode frames as a newline-delimited JSON body."""
    return b"".join(json.dumps(f, ensure_ascii=False).encode("utf-8") + b"\n" for f in frames)


def text_frames(*parts: str) -> bytes:
    """A streamed text answer split into content fragments."""
    frames = [{"message": {"role": "assistant", "content": p}, "done": False} for p in parts]
    frames.append({"message": {"role": "assistant", "content": ""}, "done": True})
    return ndjson(*frames)


def tool_frames(name: str, arguments: Any) -> bytes:
    """A streamed answer carrying one tool call."""
    return ndjson(
        {"message": {"role": "assistant", "content": "", "tool_calls": [{"function": {"name": name, "arguments": arguments}}]}},
        {"message": {"role": "assistant", "content": ""}, "done": True},
    )


async def chunked(*chunks):
    for chunk in chunks:
        yield chunk


def hanging_response(*parts: str):
    """A 200 response that sends parts and then never finishes."""

    async def body():
        for part in parts:
            yield json.dumps({"message": {"content": part}}).encode("utf-8") + b"\n"
        await asyncio.Event().wait()

    return lambda request: httpx.Response(200, content=body())


class FakeModelServer:
    """
    MockTransport handler recording every request.

    responses: list of bodies (bytes) or callables(request) -> httpx.Response,
    consumed one per chat request; the last one repeats.
    """

    def __init__(self, *responses, health: Dict[str, Any] = None):
        self.responses: List[Any] = list(responses)
        self.health = health if health is not None else {"status": "ok", "config": {"hotline": HOTLINE}}
        self.requests: List[httpx.Request] = []
        self.chat_payloads: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET" and request.url.path.endswith("/health"):
            return httpx.Response(200, json=self.health)

        self.chat_payloads.append(json.loads(request.content))
        if not self.responses:
            return httpx.Response(200, content=text_frames(""))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if callable(response):
            return response(request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, content=response, headers={"Content-Type": "application/x-ndjson"})

    @property
    def chat_calls(self) -> int:
        return len(self.chat_payloads)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def user():
    return User(full_name="Nguyễn Văn An", roles=["doctor"], permissions=list(ALL_PERMISSIONS))


@pytest.fixture
def auth(user):
    return InMemoryAuthService(user, token="token-123")


@pytest.fixture
def theme():
    return InMemoryThemeService(dark=False)


@pytest.fixture
def portal_router():
    return InMemoryRouter(DEFAULT_ROUTES, url="/app/home")


@pytest.fixture
def make_llm(config) -> Callable[..., LLMClient]:
    def factory(server: FakeModelServer, cfg: RuntimeConfig = None) -> LLMClient:
        return LLMClient(cfg or config, transport=httpx.MockTransport(server))

    return factory
