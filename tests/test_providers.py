"""
Tests for the DingTalk and Feishu adapters against a fake GraphQL backend.
"""

import httpx
import pytest

from report_assistant import (
    CanonicalReport,
    CapabilityUnsupported,
    DingTalkAdapter,
    FeishuAdapter,
    FieldType,
    GraphQLError,
    MalformedResponse,
    NotFound,
    ReportField,
    ReportFilter,
    ReportSubmission,
)
from report_assistant.config import MAX_REPORT_PAGES


def _detail(name, code, fields):
    return {"dingtalkTemplates": [{
        "name": name,
        "reportCode": code,
        "detail": {"id": code, "name": name, "fields": fields},
    }]}


def _report(report_id, creator="张三", contents=None):
    return {
        "report_id": report_id,
        "template_name": "日报",
        "creator_name": creator,
        "create_time": 1_700_000_000_000,
        "contents": contents or [{"key": "今日完成工作", "value": "写代码"}],
    }


class TestFieldTypeMapping:
    """Native type codes map onto the canonical set, unknowns to rich text."""

    @pytest.mark.parametrize("native,expected", [
        (1, FieldType.TEXT_RICH),
        (2, FieldType.NUMBER),
        ("3", FieldType.DROPDOWN),
        (5, FieldType.DATETIME),
        (7, FieldType.MULTI_SELECT),
        (8, FieldType.IMAGE),
        (9, FieldType.ATTACHMENT),
        (12, FieldType.USER_PICKER),
        (16, FieldType.TEXT_RICH),
        (999, FieldType.TEXT_RICH),
        (None, FieldType.TEXT_RICH),
        ("abc", FieldType.TEXT_RICH),
        (True, FieldType.TEXT_RICH),
    ])
    def test_dingtalk(self, native, expected):
        assert DingTalkAdapter.map_field_type(native) == expected

    @pytest.mark.parametrize("native,expected", [
        ("text", FieldType.TEXT_RICH),
        ("number", FieldType.NUMBER),
        ("dropdown", FieldType.DROPDOWN),
        ("image", FieldType.IMAGE),
        ("attachment", FieldType.ATTACHMENT),
        ("multiSelect", FieldType.MULTI_SELECT),
        ("address", FieldType.ADDRESS),
        ("datetime", FieldType.DATETIME),
        ("formula", FieldType.TEXT_RICH),
        (None, FieldType.TEXT_RICH),
        (["unhashable"], FieldType.TEXT_RICH),
    ])
    def test_feishu(self, native, expected):
        assert FeishuAdapter.map_field_type(native) == expected


class TestDingTalkTemplates:
    """Template listing and detail lookup."""

    @pytest.mark.asyncio
    async def test_template_detail_builds_fields(self, make_graphql):
        graphql = make_graphql({"GetDingTalkTemplateDetail": _detail("日报", "R1", [
            {"fieldName": "今日完成工作", "sort": 0, "type": 1},
            {"fieldName": "心情", "sort": 1, "type": 3},
            {"fieldName": "截图", "sort": 2, "type": 8},
            {"fieldName": "附件", "sort": 3, "type": 9},
        ])})
        adapter = DingTalkAdapter(graphql)

        template = await adapter.template_detail("日报", graphql.credentials.get_session())

        assert template.id == "R1"
        assert template.name == "日报"
        assert [f.id for f in template.fields] == ["field_R1_0", "field_R1_1", "field_R1_2", "field_R1_3"]
        assert template.fields[0].placeholder == "请输入今日完成工作..."
        assert [o.value for o in template.fields[1].options] == ["option1", "option2"]
        assert template.fields[2].max_count == 99
        assert template.fields[2].max_size_bytes == 20 * 1024 * 1024
        assert template.fields[3].max_count == 9
        assert template.fields[3].max_size_bytes == 50 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_template_detail_not_found(self, make_graphql):
        graphql = make_graphql({"GetDingTalkTemplateDetail": {"dingtalkTemplates": []}})
        adapter = DingTalkAdapter(graphql)

        with pytest.raises(NotFound):
            await adapter.template_detail("周报", graphql.credentials.get_session())

    @pytest.mark.asyncio
    async def test_template_detail_first_match_wins(self, make_graphql):
        first = _detail("日报", "A", [{"fieldName": "甲", "type": 1}])["dingtalkTemplates"][0]
        second = _detail("日报", "B", [{"fieldName": "乙", "type": 1}])["dingtalkTemplates"][0]
        graphql = make_graphql({"GetDingTalkTemplateDetail": {"dingtalkTemplates": [first, second]}})
        adapter = DingTalkAdapter(graphql)

        template = await adapter.template_detail("日报", graphql.credentials.get_session())

        assert template.id == "A"
        assert [f.label for f in template.fields] == ["甲"]

    @pytest.mark.asyncio
    async def test_list_templates_degrades_failed_detail(self, make_graphql):
        def detail(variables):
            name = variables["name"]
            if name == "周报":
                return httpx.Response(500, json={"message": "upstream exploded"})
            return _detail(name, f"code-{name}", [{"fieldName": f"{name}内容", "type": 1}])

        graphql = make_graphql({
            "GetDingTalkTemplates": {"dingtalkTemplates": [
                {"name": "日报", "reportCode": "code-日报"},
                {"name": "周报", "reportCode": "code-周报"},
                {"name": "月报", "reportCode": "code-月报"},
            ]},
            "GetDingTalkTemplateDetail": detail,
        })
        adapter = DingTalkAdapter(graphql)

        templates = await adapter.list_templates(graphql.credentials.get_session())

        assert [t.name for t in templates] == ["日报", "周报", "月报"]
        assert templates[1] == adapter.default_template("code-周报", "周报")
        assert [f.label for f in templates[1].fields] == ["今日完成工作", "未完成工作", "需协调工作", "备注"]
        assert templates[0].fields[0].label == "日报内容"
        assert templates[2].fields[0].label == "月报内容"

    @pytest.mark.asyncio
    async def test_listing_error_propagates(self, make_graphql):
        graphql = make_graphql({"GetDingTalkTemplates": httpx.Response(
            200, json={"errors": [{"message": "permission denied"}]}
        )})
        adapter = DingTalkAdapter(graphql)

        with pytest.raises(GraphQLError, match="permission denied"):
            await adapter.list_templates(graphql.credentials.get_session())


class TestDingTalkReports:
    """Report listing, normalization and submission."""

    @pytest.mark.asyncio
    async def test_list_reports_follows_cursor(self, make_graphql):
        calls = []

        def reports(variables):
            if variables["cursor"] == 0:
                return {"dingtalkReports": {"data_list": [_report("r1")], "next_cursor": 20, "has_more": True}}
            return {"dingtalkReports": {"data_list": [_report("r2")], "next_cursor": None, "has_more": False}}

        graphql = make_graphql({"GetDingTalkReports": reports}, calls=calls)
        adapter = DingTalkAdapter(graphql)

        result = await adapter.list_reports(
            ReportFilter(template_name="日报"), graphql.credentials.get_session()
        )

        assert [r.id for r in result] == ["r1", "r2"]
        assert [variables["cursor"] for _, variables in calls] == [0, 20]
        assert calls[0][1]["template_name"] == "日报"
        assert calls[0][1]["start_time"] == 0

    @pytest.mark.asyncio
    async def test_list_reports_stops_at_page_limit(self, make_graphql):
        calls = []
        graphql = make_graphql({"GetDingTalkReports": lambda v: {"dingtalkReports": {
            "data_list": [_report(f"r{v['cursor']}")], "next_cursor": v["cursor"] + 1, "has_more": True,
        }}}, calls=calls)
        adapter = DingTalkAdapter(graphql)

        result = await adapter.list_reports(ReportFilter(), graphql.credentials.get_session())

        assert len(calls) == MAX_REPORT_PAGES
        assert len(result) == MAX_REPORT_PAGES

    @pytest.mark.asyncio
    async def test_malformed_envelope_yields_empty(self, make_graphql):
        graphql = make_graphql({"GetDingTalkReports": {"dingtalkReports": {"data_list": "nope"}}})
        adapter = DingTalkAdapter(graphql)

        assert await adapter.list_reports(ReportFilter(), graphql.credentials.get_session()) == []

    def test_normalize_report_title_and_fields(self):
        adapter = DingTalkAdapter(graphql=None)
        report = adapter.normalize_report(_report("r9", creator="李四"))

        assert report.id == "r9"
        assert report.title.startswith("日报 - 李四 (")
        assert report.title.endswith(")")
        assert report.fields == [ReportField(name="今日完成工作", value="写代码")]

    def test_normalize_is_idempotent(self):
        adapter = DingTalkAdapter(graphql=None)
        once = adapter.normalize_report(_report("r9"))
        assert adapter.normalize_report(once) is once

    def test_normalize_reports_skips_bad_items(self):
        adapter = DingTalkAdapter(graphql=None)
        reports = adapter.normalize_reports([_report("r1"), {"creator_name": "无编号"}, "junk"])
        assert [r.id for r in reports] == ["r1"]
        assert adapter.normalize_reports({"not": "a list"}) == []

    def test_normalize_report_requires_id(self):
        with pytest.raises(MalformedResponse):
            DingTalkAdapter(graphql=None).normalize_report({"creator_name": "张三"})

    @pytest.mark.asyncio
    async def test_submit_report(self, make_graphql):
        calls = []
        graphql = make_graphql(
            {"CreateDingTalkReport": {"createDingtalkReport": {"report_id": "new-1"}}}, calls=calls
        )
        adapter = DingTalkAdapter(graphql)
        submission = ReportSubmission(
            template_id="R1",
            template_name="周报",
            contents=[ReportField(name="本周工作总结", value="完成了接口联调")],
        )

        result = await adapter.submit_report(submission, graphql.credentials.get_session())

        assert result.report_id == "new-1"
        assert calls[0][1]["contents"] == [{"key": "本周工作总结", "value": "完成了接口联调"}]

    @pytest.mark.asyncio
    async def test_submit_without_report_id(self, make_graphql):
        graphql = make_graphql({"CreateDingTalkReport": {"createDingtalkReport": {}}})
        adapter = DingTalkAdapter(graphql)
        submission = ReportSubmission(template_id="R1", template_name="周报")

        with pytest.raises(MalformedResponse):
            await adapter.submit_report(submission, graphql.credentials.get_session())


class TestFeishu:
    """Feishu rules, tasks and the missing write capability."""

    @pytest.mark.asyncio
    async def test_template_detail(self, make_graphql):
        graphql = make_graphql({"GetFeishuTemplateDetail": {"feishuTemplateDetail": [{
            "rule_id": "rule-7",
            "name": "周报",
            "form_schema": [{"name": "本周工作总结", "type": "text"}, {"name": "工时", "type": "number"}],
        }]}}, provider="feishu")
        adapter = FeishuAdapter(graphql)

        template = await adapter.template_detail("周报", graphql.credentials.get_session())

        assert template.id == "rule-7"
        assert [(f.id, f.type) for f in template.fields] == [
            ("field_rule-7_0", FieldType.TEXT_RICH),
            ("field_rule-7_1", FieldType.NUMBER),
        ]

    @pytest.mark.asyncio
    async def test_list_templates_degrades_failed_detail(self, make_graphql):
        def detail(variables):
            if variables["name"] == "月报":
                return httpx.Response(500, text="rule service unavailable")
            return {"feishuTemplateDetail": [{
                "rule_id": "rule-1",
                "name": "周报",
                "form_schema": [{"name": "本周工作总结", "type": "text"}],
            }]}

        graphql = make_graphql({
            "GetFeishuTemplates": {"feishuTemplates": [
                {"id": "rule-1", "name": "周报"},
                {"id": "rule-2", "name": "月报"},
            ]},
            "GetFeishuTemplateDetail": detail,
        }, provider="feishu")
        adapter = FeishuAdapter(graphql)

        templates = await adapter.list_templates(graphql.credentials.get_session())

        assert [t.id for t in templates] == ["rule-1", "rule-2"]
        assert [f.label for f in templates[0].fields] == ["本周工作总结"]
        assert templates[1] == adapter.default_template("rule-2", "月报")
        assert [f.label for f in templates[1].fields] == ["本周工作总结", "下周工作计划", "需要的支持"]

    @pytest.mark.asyncio
    async def test_template_detail_not_found(self, make_graphql):
        graphql = make_graphql({"GetFeishuTemplateDetail": {"feishuTemplateDetail": None}}, provider="feishu")
        with pytest.raises(NotFound):
            await FeishuAdapter(graphql).template_detail("不存在", graphql.credentials.get_session())

    @pytest.mark.asyncio
    async def test_list_reports(self, make_graphql):
        calls = []
        graphql = make_graphql({"GetFeishuReports": {"feishuReports": {
            "items": [{
                "task_id": "t1",
                "rule_name": "周报",
                "from_user_name": "王五",
                "commit_time": 1_700_000_000,
                "form_contents": [{"field_name": "本周工作总结", "field_value": "上线新版本"}],
            }],
            "has_more": False,
        }}}, provider="feishu", calls=calls)
        adapter = FeishuAdapter(graphql)

        reports = await adapter.list_reports(
            ReportFilter(template_id="rule-7"), graphql.credentials.get_session()
        )

        assert calls[0][1] == {"rule_id": "rule-7", "start_time": "", "end_time": ""}
        assert len(reports) == 1
        assert reports[0].title.startswith("周报 - 王五 (")
        assert reports[0].fields[0].value == "上线新版本"

    @pytest.mark.asyncio
    async def test_malformed_envelope_yields_empty(self, make_graphql):
        graphql = make_graphql({"GetFeishuReports": {"feishuReports": None}}, provider="feishu")
        adapter = FeishuAdapter(graphql)
        assert await adapter.list_reports(ReportFilter(), graphql.credentials.get_session()) == []

    def test_normalize_is_idempotent(self):
        adapter = FeishuAdapter(graphql=None)
        report = CanonicalReport(id="t1", title="周报 - 王五 ()", fields=[])
        assert adapter.normalize_report(report) is report

    @pytest.mark.asyncio
    async def test_submit_is_unsupported(self, make_graphql):
        graphql = make_graphql({}, provider="feishu")
        adapter = FeishuAdapter(graphql)

        with pytest.raises(CapabilityUnsupported):
            await adapter.submit_report(
                ReportSubmission(template_id="rule-7", template_name="周报"),
                graphql.credentials.get_session(),
            )

    def test_capabilities(self):
        assert DingTalkAdapter.supports("submit_report")
        assert not FeishuAdapter.supports("submit_report")
        assert FeishuAdapter.supports("list_reports")
        assert not FeishuAdapter.supports("delete_report")
