"""
ReportCatalog: routes canonical requests to the active provider's adapter.

The active provider comes from the current session. Without a live session
every operation fails with AuthenticationRequired before any network call.
"""

import logging
from typing import Mapping, Optional

from .auth import CredentialStore
from .errors import PreconditionFailed
from .graphql_client import GraphQLClient
from .models import (
    CanonicalReport,
    CanonicalTemplate,
    ReportFilter,
    ReportSubmission,
    Session,
    SubmissionResult,
)
from .providers import ADAPTERS, ProviderAdapter

logger = logging.getLogger(__name__)


class ReportCatalog:

    def __init__(self, credentials: CredentialStore, adapters: Mapping[str, ProviderAdapter]):
        self.credentials = credentials
        self.adapters = dict(adapters)

    @classmethod
    def from_registry(cls, credentials: CredentialStore, graphql: Optional[GraphQLClient] = None) -> "ReportCatalog":
        """Instantiate every registered adapter over one GraphQL transport."""
        graphql = graphql or GraphQLClient(credentials)
        return cls(credentials, {name: adapter_cls(graphql) for name, adapter_cls in ADAPTERS.items()})

    def active(self) -> tuple[ProviderAdapter, Session]:
        session = self.credentials.require_session()
        adapter = self.adapters.get(session.user.provider)
        if adapter is None:
            raise PreconditionFailed(f"No adapter registered for provider '{session.user.provider}'")
        return adapter, session

    @property
    def provider(self) -> Optional[str]:
        session = self.credentials.get_session()
        return session.user.provider if session else None

    async def list_templates(self) -> list[CanonicalTemplate]:
        adapter, session = self.active()
        return await adapter.list_templates(session)

    async def template_detail(self, name: str) -> CanonicalTemplate:
        adapter, session = self.active()
        return await adapter.template_detail(name, session)

    async def list_reports(self, report_filter: Optional[ReportFilter] = None) -> list[CanonicalReport]:
        adapter, session = self.active()
        return await adapter.list_reports(report_filter or ReportFilter(), session)

    async def submit_report(self, submission: ReportSubmission) -> SubmissionResult:
        adapter, session = self.active()
        return await adapter.submit_report(submission, session)
