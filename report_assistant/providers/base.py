"""
Provider adapter contract and registry.

An adapter translates canonical requests into one provider's GraphQL calls
and translates the answers back into the canonical model. Adding a provider
means writing one subclass and decorating it with @register_adapter.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Hashable, Optional

import httpx
from pydantic import ValidationError

from ..errors import CapabilityUnsupported, MalformedResponse, NotFound, UpstreamHttpError
from ..graphql_client import GraphQLClient
from ..models import (
    CanonicalField,
    CanonicalReport,
    CanonicalTemplate,
    FieldType,
    ReportFilter,
    ReportSubmission,
    Session,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

# Errors that only spoil one element of a listing
RECOVERABLE_ERRORS = (UpstreamHttpError, NotFound, MalformedResponse, ValidationError, httpx.HTTPError)

CAPABILITIES = ('list_templates', 'template_detail', 'list_reports', 'submit_report')

ADAPTERS: dict[str, type["ProviderAdapter"]] = {}


def register_adapter(cls: type["ProviderAdapter"]) -> type["ProviderAdapter"]:
    """Class decorator adding an adapter to the provider table."""
    if not cls.provider:
        raise ValueError(f"{cls.__name__} must define a provider id")
    ADAPTERS[cls.provider] = cls
    return cls


def field_id(template_id: str, index: int) -> str:
    return f"field_{template_id}_{index}"


def placeholder_for(label: str) -> str:
    return f"请输入{label}..."


class ProviderAdapter(ABC):
    """Canonical capability interface implemented once per provider."""

    provider: str = ""
    display_name: str = ""

    # native type code/string -> canonical type; anything missing maps to rich text
    FIELD_TYPE_MAP: dict[Hashable, FieldType] = {}

    # (label, type) pairs used when a template's detail cannot be fetched
    DEFAULT_FIELDS: tuple[tuple[str, FieldType], ...] = ()

    def __init__(self, graphql: GraphQLClient):
        self.graphql = graphql

    # -------------------------------------------------------------------------
    # Field types
    # -------------------------------------------------------------------------

    @classmethod
    def native_type_key(cls, native: Any) -> Any:
        return native

    @classmethod
    def map_field_type(cls, native: Any) -> FieldType:
        """Total mapping from the provider's native field type to FieldType."""
        try:
            return cls.FIELD_TYPE_MAP.get(cls.native_type_key(native), FieldType.TEXT_RICH)
        except TypeError:
            return FieldType.TEXT_RICH

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def default_template(self, template_id: str, name: str) -> CanonicalTemplate:
        """Canned template offered when the real field list is unavailable."""
        return CanonicalTemplate(
            id=template_id,
            name=name,
            fields=[
                CanonicalField(
                    id=field_id(template_id, index),
                    label=label,
                    type=field_type,
                    placeholder=placeholder_for(label),
                )
                for index, (label, field_type) in enumerate(self.DEFAULT_FIELDS)
            ],
        )

    @abstractmethod
    async def list_template_stubs(self, session: Session) -> list[tuple[str, str]]:
        """Lightweight listing as (template_id, name) pairs."""

    @abstractmethod
    async def template_detail(
        self,
        name: str,
        session: Session,
        template_id: Optional[str] = None,
    ) -> CanonicalTemplate:
        """Resolve a template by display name; the first match wins."""

    async def list_templates(self, session: Session) -> list[CanonicalTemplate]:
        """
        List templates with their fields populated.

        Performs one detail fetch per template. A failed fetch degrades to
        the provider's default template instead of dropping the entry.
        """
        stubs = await self.list_template_stubs(session)
        templates = []

        for template_id, name in stubs:
            try:
                template = await self.template_detail(name, session, template_id=template_id)
            except RECOVERABLE_ERRORS as e:
                logger.warning(
                    f"[{self.provider}] Detail for template '{name}' failed, using default fields: {e}"
                )
                template = self.default_template(template_id, name)
            templates.append(template)

        logger.info(f"[{self.provider}] Loaded {len(templates)} template(s)")
        return templates

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_reports(self, report_filter: ReportFilter, session: Session) -> list[CanonicalReport]:
        """Reports matching the filter; a malformed envelope yields []."""

    @abstractmethod
    def normalize_report(self, raw: Any) -> CanonicalReport:
        """Translate one upstream report; canonical input is returned unchanged."""

    def normalize_reports(self, items: Any) -> list[CanonicalReport]:
        if not isinstance(items, list):
            logger.warning(f"[{self.provider}] Report list has unexpected shape: {type(items).__name__}")
            return []

        reports = []
        for item in items:
            try:
                reports.append(self.normalize_report(item))
            except (MalformedResponse, ValidationError) as e:
                logger.warning(f"[{self.provider}] Skipping malformed report: {e}")
        return reports

    async def submit_report(self, submission: ReportSubmission, session: Session) -> SubmissionResult:
        raise CapabilityUnsupported(self.provider, 'submit_report')

    @classmethod
    def supports(cls, capability: str) -> bool:
        if capability not in CAPABILITIES:
            return False
        if capability == 'submit_report':
            return cls.submit_report is not ProviderAdapter.submit_report
        return True
