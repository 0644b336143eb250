"""
Feishu (Lark) adapter.

Feishu calls templates "rules"; a rule's form_schema holds its fields and
reports are "tasks" queried by rule id. Read-only: no submit support.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from ..errors import MalformedResponse, NotFound
from ..models import (
    CanonicalField,
    CanonicalReport,
    CanonicalTemplate,
    FieldType,
    ReportField,
    ReportFilter,
    Session,
    format_timestamp,
)
from .base import ProviderAdapter, field_id, placeholder_for, register_adapter

logger = logging.getLogger(__name__)

TEMPLATES_QUERY = """
query GetFeishuTemplates {
  feishuTemplates {
    id
    name
  }
}
"""

TEMPLATE_DETAIL_QUERY = """
query GetFeishuTemplateDetail($name: String!) {
  feishuTemplateDetail(name: $name) {
    rule_id
    name
    form_schema {
      name
      type
    }
  }
}
"""

REPORTS_QUERY = """
query GetFeishuReports($rule_id: String!, $start_time: String!, $end_time: String!) {
  feishuReports(rule_id: $rule_id, start_time: $start_time, end_time: $end_time) {
    items {
      task_id
      rule_name
      from_user_name
      commit_time
      form_contents {
        field_name
        field_value
      }
    }
    has_more
    page_token
  }
}
"""


def _to_seconds(value: Optional[datetime]) -> str:
    return str(int(value.timestamp())) if value is not None else ''


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


@register_adapter
class FeishuAdapter(ProviderAdapter):
    provider = 'feishu'
    display_name = '飞书'

    FIELD_TYPE_MAP = {
        'text': FieldType.TEXT_RICH,
        'number': FieldType.NUMBER,
        'dropdown': FieldType.DROPDOWN,
        'image': FieldType.IMAGE,
        'attachment': FieldType.ATTACHMENT,
        'multiSelect': FieldType.MULTI_SELECT,
        'address': FieldType.ADDRESS,
        'datetime': FieldType.DATETIME,
    }

    DEFAULT_FIELDS = (
        ('本周工作总结', FieldType.TEXT_RICH),
        ('下周工作计划', FieldType.TEXT_RICH),
        ('需要的支持', FieldType.TEXT_RICH),
    )

    async def list_template_stubs(self, session: Session) -> list[tuple[str, str]]:
        data = await self.graphql.execute(TEMPLATES_QUERY, {}, 'feishuTemplates')
        items = data.get('feishuTemplates')
        if not isinstance(items, list):
            logger.warning(f"飞书模板列表格式不正确: {items!r}")
            return []

        return [
            (str(item.get('id') or item['name']), str(item['name']))
            for item in items
            if isinstance(item, dict) and item.get('name')
        ]

    async def template_detail(
        self,
        name: str,
        session: Session,
        template_id: Optional[str] = None,
    ) -> CanonicalTemplate:
        data = await self.graphql.execute(TEMPLATE_DETAIL_QUERY, {'name': name}, 'feishuTemplateDetail')
        rules = data.get('feishuTemplateDetail')

        # Upstream answers with a list of rules matching the name
        if isinstance(rules, dict):
            rules = [rules]
        if not rules:
            raise NotFound(f"飞书模板不存在: {name}")
        if not isinstance(rules, list) or not isinstance(rules[0], dict):
            raise MalformedResponse(f"获取飞书模板详情失败: 响应格式不正确 ({rules!r})")
        if len(rules) > 1:
            logger.info(f"{len(rules)} Feishu rules named '{name}', using the first")

        rule = rules[0]
        schema = rule.get('form_schema') or []
        if not isinstance(schema, list):
            raise MalformedResponse(f"获取飞书模板详情失败: '{name}' form_schema 格式不正确")

        tid = str(rule.get('rule_id') or template_id or name)
        fields = []
        for index, raw in enumerate(schema):
            if not isinstance(raw, dict):
                raise MalformedResponse(f"Feishu field #{index} is not an object")
            label = _as_text(raw.get('name')) or f"字段{index + 1}"
            fields.append(CanonicalField(
                id=field_id(tid, index),
                label=label,
                type=self.map_field_type(raw.get('type')),
                placeholder=placeholder_for(label),
            ))

        return CanonicalTemplate(id=tid, name=_as_text(rule.get('name')) or name, fields=fields)

    async def list_reports(self, report_filter: ReportFilter, session: Session) -> list[CanonicalReport]:
        variables = {
            'rule_id': report_filter.template_id or '',
            'start_time': _to_seconds(report_filter.start_time),
            'end_time': _to_seconds(report_filter.end_time),
        }
        data = await self.graphql.execute(REPORTS_QUERY, variables, 'feishuReports')

        envelope = data.get('feishuReports')
        if not isinstance(envelope, dict) or not isinstance(envelope.get('items'), list):
            logger.warning(f"API返回的数据格式不正确: {envelope!r}")
            return []
        if envelope.get('has_more'):
            logger.info("More Feishu reports available than returned in this page")

        return self.normalize_reports(envelope['items'])

    def normalize_report(self, raw: Any) -> CanonicalReport:
        if isinstance(raw, CanonicalReport):
            return raw
        if not isinstance(raw, dict) or not raw.get('task_id'):
            raise MalformedResponse(f"Feishu report without task_id: {raw!r}")

        contents = raw.get('form_contents') or []
        return CanonicalReport(
            id=str(raw['task_id']),
            title=(
                f"{_as_text(raw.get('rule_name'))} - {_as_text(raw.get('from_user_name'))} "
                f"({format_timestamp(raw.get('commit_time'))})"
            ),
            fields=[
                ReportField(name=_as_text(c.get('field_name')), value=_as_text(c.get('field_value')))
                for c in contents
                if isinstance(c, dict)
            ],
        )
