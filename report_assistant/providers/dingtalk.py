"""
DingTalk adapter.

Templates are keyed by name upstream; the listing only carries name and
report code, so field detail is fetched per template. DingTalk is the only
provider with write support (createDingtalkReport).
"""

import logging
import time
from datetime import datetime
from typing import Any, Optional

from ..config import MAX_REPORT_PAGES
from ..errors import MalformedResponse, NotFound
from ..models import (
    CanonicalField,
    CanonicalReport,
    CanonicalTemplate,
    FieldOption,
    FieldType,
    ReportField,
    ReportFilter,
    ReportSubmission,
    Session,
    SubmissionResult,
    format_timestamp,
)
from .base import ProviderAdapter, field_id, placeholder_for, register_adapter

logger = logging.getLogger(__name__)

TEMPLATES_QUERY = """
query GetDingTalkTemplates($userId: String) {
  dingtalkTemplates(userId: $userId) {
    name
    reportCode
  }
}
"""

TEMPLATE_DETAIL_QUERY = """
query GetDingTalkTemplateDetail($name: String!, $userId: String!) {
  dingtalkTemplates(name: $name, userId: $userId) {
    name
    reportCode
    detail(userId: $userId) {
      id
      name
      fields {
        fieldName
        sort
        type
      }
    }
  }
}
"""

REPORTS_QUERY = """
query GetDingTalkReports($template_name: String!, $start_time: Int!, $end_time: Int!, $cursor: Int, $size: Int) {
  dingtalkReports(template_name: $template_name, start_time: $start_time, end_time: $end_time, cursor: $cursor, size: $size) {
    data_list {
      report_id
      template_name
      creator_name
      create_time
      contents {
        key
        value
      }
    }
    next_cursor
    has_more
  }
}
"""

CREATE_REPORT_MUTATION = """
mutation CreateDingTalkReport($template_name: String!, $template_id: String!, $contents: [ReportContentInput!]!) {
  createDingtalkReport(template_name: $template_name, template_id: $template_id, contents: $contents) {
    report_id
  }
}
"""

# Placeholder choices for select fields the upstream leaves empty
DEFAULT_OPTIONS = [
    FieldOption(value='option1', text='选项1'),
    FieldOption(value='option2', text='选项2'),
]

IMAGE_MAX_COUNT = 99
IMAGE_MAX_SIZE = 20 * 1024 * 1024
ATTACHMENT_MAX_COUNT = 9
ATTACHMENT_MAX_SIZE = 50 * 1024 * 1024


def _to_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


@register_adapter
class DingTalkAdapter(ProviderAdapter):
    provider = 'dingtalk'
    display_name = '钉钉'

    FIELD_TYPE_MAP = {
        1: FieldType.TEXT_RICH,      # 文本
        2: FieldType.NUMBER,         # 数字
        3: FieldType.DROPDOWN,       # 单选
        5: FieldType.DATETIME,       # 日期
        7: FieldType.MULTI_SELECT,   # 多选
        8: FieldType.IMAGE,          # 图片
        9: FieldType.ATTACHMENT,     # 附件
        12: FieldType.USER_PICKER,   # 客户
        # 16 is a table, rendered as rich text
    }

    DEFAULT_FIELDS = (
        ('今日完成工作', FieldType.TEXT_RICH),
        ('未完成工作', FieldType.TEXT_RICH),
        ('需协调工作', FieldType.TEXT_RICH),
        ('备注', FieldType.TEXT_RICH),
    )

    @classmethod
    def native_type_key(cls, native: Any) -> Any:
        if isinstance(native, bool):
            return None
        try:
            return int(native)
        except (TypeError, ValueError):
            return None

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    async def list_template_stubs(self, session: Session) -> list[tuple[str, str]]:
        data = await self.graphql.execute(TEMPLATES_QUERY, {'userId': session.user.id}, 'dingtalkTemplates')
        items = data.get('dingtalkTemplates')
        if not isinstance(items, list):
            logger.warning(f"钉钉模板列表格式不正确: {items!r}")
            return []

        stubs = []
        for item in items:
            if not isinstance(item, dict) or not item.get('name'):
                logger.warning(f"Skipping DingTalk template without name: {item!r}")
                continue
            stubs.append((str(item.get('reportCode') or item['name']), str(item['name'])))
        return stubs

    async def template_detail(
        self,
        name: str,
        session: Session,
        template_id: Optional[str] = None,
    ) -> CanonicalTemplate:
        data = await self.graphql.execute(
            TEMPLATE_DETAIL_QUERY,
            {'name': name, 'userId': session.user.id},
            'dingtalkTemplateDetail',
        )
        matches = data.get('dingtalkTemplates')
        if matches is None or matches == []:
            raise NotFound(f"钉钉模板不存在: {name}")
        if not isinstance(matches, list):
            raise MalformedResponse(f"获取钉钉模板详情失败: 响应格式不正确 ({type(matches).__name__})")
        if len(matches) > 1:
            logger.info(f"{len(matches)} DingTalk templates named '{name}', using the first")

        item = matches[0]
        detail = item.get('detail') if isinstance(item, dict) else None
        if not isinstance(detail, dict):
            raise MalformedResponse(f"获取钉钉模板详情失败: '{name}' 没有详情")

        raw_fields = detail.get('fields') or []
        if not isinstance(raw_fields, list):
            raise MalformedResponse(f"获取钉钉模板详情失败: '{name}' 字段格式不正确")

        tid = str(template_id or item.get('reportCode') or detail.get('id') or name)
        return CanonicalTemplate(
            id=tid,
            name=str(detail.get('name') or item.get('name') or name),
            fields=[self._build_field(tid, index, raw) for index, raw in enumerate(raw_fields)],
        )

    def _build_field(self, template_id: str, index: int, raw: Any) -> CanonicalField:
        if not isinstance(raw, dict):
            raise MalformedResponse(f"DingTalk field #{index} is not an object")

        label = str(raw.get('fieldName') or raw.get('field_name') or f"字段{index + 1}")
        field_type = self.map_field_type(raw.get('type'))
        extra = {}

        if field_type in (FieldType.DROPDOWN, FieldType.MULTI_SELECT):
            options = raw.get('options')
            if isinstance(options, list) and options:
                extra['options'] = [FieldOption.model_validate(o) for o in options]
            else:
                extra['options'] = list(DEFAULT_OPTIONS)
        elif field_type == FieldType.IMAGE:
            extra['max_count'] = IMAGE_MAX_COUNT
            extra['max_size_bytes'] = IMAGE_MAX_SIZE
        elif field_type == FieldType.ATTACHMENT:
            extra['max_count'] = ATTACHMENT_MAX_COUNT
            extra['max_size_bytes'] = ATTACHMENT_MAX_SIZE

        return CanonicalField(
            id=field_id(template_id, index),
            label=label,
            type=field_type,
            placeholder=placeholder_for(label),
            **extra,
        )

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    async def list_reports(self, report_filter: ReportFilter, session: Session) -> list[CanonicalReport]:
        variables = {
            'template_name': report_filter.template_name or '',
            'start_time': _to_millis(report_filter.start_time) or 0,
            'end_time': _to_millis(report_filter.end_time) or int(time.time() * 1000),
            'cursor': report_filter.cursor,
            'size': report_filter.size,
        }

        reports: list[CanonicalReport] = []
        for page in range(MAX_REPORT_PAGES):
            data = await self.graphql.execute(REPORTS_QUERY, variables, 'dingtalkReports')
            envelope = data.get('dingtalkReports')
            if not isinstance(envelope, dict) or not isinstance(envelope.get('data_list'), list):
                logger.warning(f"钉钉API返回的数据格式不正确: {envelope!r}")
                break

            reports.extend(self.normalize_reports(envelope['data_list']))

            next_cursor = envelope.get('next_cursor')
            if not envelope.get('has_more') or next_cursor is None:
                break
            variables['cursor'] = next_cursor
        else:
            logger.info(f"Stopped after {MAX_REPORT_PAGES} pages of DingTalk reports")

        return reports

    def normalize_report(self, raw: Any) -> CanonicalReport:
        if isinstance(raw, CanonicalReport):
            return raw
        if not isinstance(raw, dict) or not raw.get('report_id'):
            raise MalformedResponse(f"DingTalk report without report_id: {raw!r}")

        create_time = raw.get('create_time')
        submitted = format_timestamp(create_time / 1000) if isinstance(create_time, (int, float)) else ''
        contents = raw.get('contents') or []

        return CanonicalReport(
            id=str(raw['report_id']),
            title=f"{_as_text(raw.get('template_name'))} - {_as_text(raw.get('creator_name'))} ({submitted})",
            fields=[
                ReportField(name=_as_text(c.get('key')), value=_as_text(c.get('value')))
                for c in contents
                if isinstance(c, dict)
            ],
        )

    async def submit_report(self, submission: ReportSubmission, session: Session) -> SubmissionResult:
        variables = {
            'template_name': submission.template_name,
            'template_id': submission.template_id,
            'contents': [{'key': f.name, 'value': f.value} for f in submission.contents],
        }
        data = await self.graphql.execute(CREATE_REPORT_MUTATION, variables, 'createDingtalkReport')

        created = data.get('createDingtalkReport')
        report_id = created.get('report_id') if isinstance(created, dict) else None
        status = None
        # the backend may nest the upstream result object under report_id
        if isinstance(report_id, dict):
            status = report_id.get('status')
            report_id = report_id.get('report_id')
        if not report_id:
            raise MalformedResponse(f"发送报告失败: 未返回 report_id ({created!r})")

        logger.info(f"DingTalk report created: {report_id}")
        return SubmissionResult(report_id=str(report_id), raw_status=status)
