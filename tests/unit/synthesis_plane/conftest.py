"""Shared fakes for provider and sampling tests: scripted ``httpx.MockTransport`` replies."""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import httpx
import pytest


@dataclass(slots=True)
class ScriptedHttp:
    """Replays queued responses and records every outgoing request body and headers."""

    replies: deque[httpx.Response]
    bodies: list[dict[str, object]] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    headers: list[httpx.Headers] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content.decode("utf-8")))
        self.urls.append(str(request.url))
        self.headers.append(request.headers)
        if not self.replies:
            raise AssertionError("scripted http replies exhausted")
        return self.replies.popleft()

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def scripted_http() -> Callable[[Iterable[httpx.Response]], ScriptedHttp]:
    def build(replies: Iterable[httpx.Response]) -> ScriptedHttp:
        return ScriptedHttp(replies=deque(replies))

    return build
