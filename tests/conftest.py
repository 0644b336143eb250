"""
Shared fixtures: tokens, sessions and fake backends built on httpx.MockTransport.
"""

import json
import re
import time

import httpx
import jwt
import pytest

from report_assistant import (
    CredentialStore,
    GraphQLClient,
    MemoryStore,
    Session,
    User,
)

BASE_URL = "http://backend.test"
TOKEN_SECRET = "test-secret-not-checked-by-the-client"

_OPERATION_RE = re.compile(r"(?:query|mutation)\s+(\w+)")


def make_token(exp: float) -> str:
    """HS256 JWT with an `exp` claim; the secret is never checked by the client."""
    return jwt.encode({"exp": int(exp), "open_id": "ou_1"}, TOKEN_SECRET, algorithm="HS256")


def live_token() -> str:
    return make_token(time.time() + 3600)


def graphql_handler(operations: dict, calls: list = None):
    """
    MockTransport handler answering GraphQL operations by name.

    `operations` maps an operation name (e.g. GetDingTalkTemplates) to either a
    data dict, an httpx.Response, or a callable(variables) returning one of those.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        name = _OPERATION_RE.search(body["query"]).group(1)
        if calls is not None:
            calls.append((name, body.get("variables") or {}))
        answer = operations[name]
        if callable(answer):
            answer = answer(body.get("variables") or {})
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json={"data": answer})
    return handler


class Navigator:
    def __init__(self):
        self.visited = []

    def __call__(self, target: str) -> None:
        self.visited.append(target)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def navigator():
    return Navigator()


@pytest.fixture
def make_credentials(store, navigator):
    """Build a CredentialStore over a MockTransport, optionally logged in."""
    def _make(handler, provider: str = "dingtalk", logged_in: bool = True) -> CredentialStore:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        credentials = CredentialStore(store, client, base_url=BASE_URL, navigate=navigator)
        if logged_in:
            credentials.set_session(Session(
                token=live_token(),
                expires_at=int(time.time()) + 3600,
                user=User(id="user-1", provider=provider, display_name="张三"),
            ))
        return credentials
    return _make


@pytest.fixture
def make_graphql(make_credentials):
    def _make(operations: dict, provider: str = "dingtalk", calls: list = None) -> GraphQLClient:
        return GraphQLClient(make_credentials(graphql_handler(operations, calls), provider=provider))
    return _make
