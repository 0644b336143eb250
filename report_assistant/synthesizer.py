"""
ReportSynthesizer: builds a new report from source reports with the AI model.

One buffered completion per target field, issued sequentially in the
template's field order. A failing field gets a manual-entry placeholder and
generation continues with the next field.
"""

import logging
from typing import Optional, Sequence

import httpx

from .completion import CancellationToken, ChunkCallback, StreamingCompletionClient, get_provider
from .errors import PreconditionFailed, ReportAssistantError
from .models import CanonicalField, CanonicalReport, CanonicalTemplate
from .prompts import (
    AI_PROMPTS,
    MANUAL_ENTRY_PLACEHOLDER,
    REPORT_DIVIDER,
    get_field_prompt,
)

logger = logging.getLogger(__name__)

# Failures that only affect the field being generated; a provider extractor
# may raise ValueError on an unexpected body
FIELD_ERRORS = (ReportAssistantError, httpx.HTTPError, ValueError)


def extract_report_contents(reports: Sequence[CanonicalReport]) -> str:
    """Render reports as 【title】 sections of `name: value` lines."""
    sections = []
    for report in reports:
        lines = "\n".join(f"{f.name}: {f.value}" for f in report.fields)
        sections.append(f"【{report.title}】\n{lines}\n")
    return REPORT_DIVIDER.join(sections)


class ReportSynthesizer:

    def __init__(self, client: StreamingCompletionClient):
        self.client = client

    async def summarize_reports(
        self,
        source_reports: Sequence[CanonicalReport],
        target_template: CanonicalTemplate,
    ) -> dict[str, str]:
        """
        Generate content for every field of the target template.

        Args:
            source_reports: Canonical reports to draw from
            target_template: Template whose fields are filled in

        Returns:
            Mapping of field id -> generated text (or a manual-entry placeholder)

        Raises:
            PreconditionFailed: no source reports, no API key configured, or an
                unknown AI provider
        """
        if not source_reports:
            raise PreconditionFailed('没有源报告数据')
        self.client.require_api_key()
        get_provider(self.client.settings.provider)

        report_contents = extract_report_contents(source_reports)
        logger.info(
            f"Summarizing {len(source_reports)} report(s) into '{target_template.name}' "
            f"({len(target_template.fields)} fields)"
        )

        summary = {}
        failed = []
        for target_field in target_template.fields:
            try:
                summary[target_field.id] = await self.generate_field_content(report_contents, target_field)
                logger.info(f"  ✓ {target_field.label}")
            except FIELD_ERRORS as e:
                logger.warning(f"  生成字段 {target_field.label} 失败: {e}")
                summary[target_field.id] = MANUAL_ENTRY_PLACEHOLDER.format(label=target_field.label)
                failed.append(target_field.label)

        if failed:
            logger.warning(f"{len(failed)} field(s) need manual entry: {', '.join(failed)}")
        return summary

    async def generate_field_content(self, report_contents: str, target_field: CanonicalField) -> str:
        prompt = get_field_prompt(target_field.label)
        return await self.client.complete(prompt, report_contents, stream=False)

    async def apply_action(
        self,
        action: str,
        text: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Run one of the editor's text actions (AI_PROMPTS) over `text`, streamed."""
        if action not in AI_PROMPTS:
            raise PreconditionFailed(f"Unknown action: {action}")
        prompt, _ = AI_PROMPTS[action]
        return await self.client.complete(prompt, text, on_chunk, stream=True, cancel_token=cancel_token)
