"""
Tests for ReportCatalog routing.
"""

import time

import httpx
import pytest

from report_assistant import (
    AuthenticationRequired,
    CapabilityUnsupported,
    GraphQLClient,
    PreconditionFailed,
    ReportCatalog,
    ReportSubmission,
    Session,
    User,
)
from report_assistant.config import TOKEN_KEY

from conftest import graphql_handler, live_token, make_token


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


class TestSessionGate:
    """Operations need a live session before touching the network."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["list_templates", "list_reports"])
    async def test_no_session(self, make_credentials, operation):
        catalog = ReportCatalog.from_registry(make_credentials(_unreachable, logged_in=False))

        with pytest.raises(AuthenticationRequired, match="用户未登录"):
            await getattr(catalog, operation)()

    @pytest.mark.asyncio
    async def test_expired_session(self, make_credentials, store, navigator):
        catalog = ReportCatalog.from_registry(make_credentials(_unreachable))
        store.set(TOKEN_KEY, make_token(time.time() - 60))

        with pytest.raises(AuthenticationRequired):
            await catalog.template_detail("日报")

        assert catalog.provider is None
        assert navigator.visited == ["/login"]

    @pytest.mark.asyncio
    async def test_unknown_provider(self, make_credentials):
        credentials = make_credentials(_unreachable, provider="wecom")
        catalog = ReportCatalog.from_registry(credentials)

        with pytest.raises(PreconditionFailed):
            await catalog.list_templates()


class TestRouting:
    """The session's provider picks the adapter."""

    @pytest.mark.asyncio
    async def test_routes_to_feishu(self, make_credentials):
        calls = []
        credentials = make_credentials(
            graphql_handler({"GetFeishuTemplates": {"feishuTemplates": []}}, calls),
            provider="feishu",
        )
        catalog = ReportCatalog.from_registry(credentials)

        assert catalog.provider == "feishu"
        assert await catalog.list_templates() == []
        assert [name for name, _ in calls] == ["GetFeishuTemplates"]

    @pytest.mark.asyncio
    async def test_switching_provider_follows_session(self, make_credentials):
        calls = []
        credentials = make_credentials(graphql_handler({
            "GetFeishuTemplates": {"feishuTemplates": []},
            "GetDingTalkTemplates": {"dingtalkTemplates": []},
        }, calls), provider="feishu")
        catalog = ReportCatalog.from_registry(credentials, GraphQLClient(credentials))

        await catalog.list_templates()
        credentials.set_session(Session(
            token=live_token(),
            expires_at=int(time.time()) + 3600,
            user=User(id="u2", provider="dingtalk", display_name="赵六"),
        ))
        await catalog.list_templates()

        assert [name for name, _ in calls] == ["GetFeishuTemplates", "GetDingTalkTemplates"]

    @pytest.mark.asyncio
    async def test_submit_on_read_only_provider(self, make_credentials):
        catalog = ReportCatalog.from_registry(make_credentials(_unreachable, provider="feishu"))

        with pytest.raises(CapabilityUnsupported):
            await catalog.submit_report(ReportSubmission(template_id="rule-1", template_name="周报"))
